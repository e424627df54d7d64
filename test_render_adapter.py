from interaction_controller import Popover
from models import IDENTITY, Frame, FrameNode, Node, ViewTransform
from render_adapter import GRADIENT_BUCKETS, StyleTemplates, change_color, render_svg


def make_node(node_id, price_change=0.0, symbol="TOK", icon=""):
    return Node(
        id=node_id, name=node_id, symbol=symbol, icon=icon, url="",
        hype=0.5, price_change=price_change, price_change_h1=0.0, volume=0.0, txns=0,
        txns_h1=0, boost=0.0, liquidity=0.0, price_usd=0.0, market_cap=0.0,
    )


def make_frame(nodes):
    return Frame(
        generation=1,
        step=10,
        nodes=tuple(FrameNode(node=n, x=100.0 + i * 50, y=200.0, radius=30.0) for i, n in enumerate(nodes)),
    )


def test_color_scale_endpoints_and_clamp():
    assert change_color(-20) == "#cc2442"
    assert change_color(0) == "#8a97b2"
    assert change_color(20) == "#14f195"
    assert change_color(-400) == change_color(-20)
    assert change_color(400) == change_color(20)


def test_buckets_are_bounded():
    templates = StyleTemplates()

    assert templates.bucket(-1000) == 0
    assert templates.bucket(1000) == GRADIENT_BUCKETS - 1
    assert templates.bucket(0) == GRADIENT_BUCKETS // 2


def test_gradients_do_not_grow_with_node_count():
    nodes = [make_node(f"n{i}", price_change=i - 100) for i in range(200)]

    svg = render_svg(make_frame(nodes), IDENTITY, 1200, 601)

    assert svg.count("<radialGradient") == GRADIENT_BUCKETS
    assert svg.count("<clipPath") == 1
    assert svg.count('class="bubble"') == 200


def test_scene_transform_applied_once_at_render_time():
    transform = ViewTransform(k=2.0, x=15.0, y=-5.0)

    svg = render_svg(make_frame([make_node("a")]), transform, 800, 420)

    assert svg.count("scale(2.0000)") == 1
    assert 'translate(100.00,200.00)' in svg


def test_text_is_escaped_and_icon_clipped():
    node = make_node("a", symbol="<X&Y>", icon="https://img/a.png?x=1&y=2")

    svg = render_svg(make_frame([node]), IDENTITY, 800, 420)

    assert "&lt;X&amp;Y&gt;" in svg
    assert 'href="https://img/a.png?x=1&amp;y=2"' in svg
    assert 'clip-path="url(#bubble-clip)"' in svg


def test_selection_and_popover_are_drawn():
    node = make_node("a")
    popover = Popover(node, 50, 60)

    svg = render_svg(make_frame([node]), IDENTITY, 800, 420, selected_id="a", popover=popover)

    assert 'stroke-width="3"' in svg
    assert 'class="popover"' in svg

    popover.close()
    svg = render_svg(make_frame([node]), IDENTITY, 800, 420, popover=popover)
    assert 'class="popover"' not in svg

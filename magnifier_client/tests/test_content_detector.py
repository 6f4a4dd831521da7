from magnifier_client.content_detector import ContentSource, detect_source
from magnifier_client.page_host import Rect


def test_page_is_default_without_elements():
    assert detect_source(10, 10, None, None) is ContentSource.FULL_PAGE


def test_canvas_takes_priority_over_overlapping_svg():
    canvas = Rect(0, 0, 100, 100)
    svg = Rect(50, 50, 100, 100)
    assert detect_source(75, 75, canvas, svg) is ContentSource.DIRECT_CANVAS
    assert detect_source(125, 125, canvas, svg) is ContentSource.SVG_REGION
    assert detect_source(300, 300, canvas, svg) is ContentSource.FULL_PAGE


def test_edges_are_inclusive():
    canvas = Rect(10, 20, 30, 40)
    assert detect_source(10, 20, canvas, None) is ContentSource.DIRECT_CANVAS
    assert detect_source(40, 60, canvas, None) is ContentSource.DIRECT_CANVAS
    assert detect_source(40.5, 60, canvas, None) is ContentSource.FULL_PAGE

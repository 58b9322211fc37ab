from layersync.core.models import BusResult, ExtractedResult
from layersync.plugin.projector import (
    CLONE_GUTTER,
    apply_records,
    apply_results,
    build_selector_requests,
    find_indexed_frames,
    find_scraper_layers,
    to_detected_layer,
)

from .conftest import frame, make_document, text


async def test_records_go_to_matching_frames_only():
    document = make_document([
        frame("card0", "Card @[0]", [text("op0", "@{operator}"), text("price0", "@{priceFormatted}")]),
        frame("card2", "Card @[2]", [text("op2", "@{operator}"), text("price2", "@{priceFormatted}")]),
    ])
    records = [
        {"operator": "FRESHBUS", "priceFormatted": "₹788", "route": "A to B"},
        {"operator": "Orange", "priceFormatted": "₹900"},
        {"operator": "VRL", "priceFormatted": "₹1,250"},
    ]

    report = await apply_records(document, records, scope="page")

    assert report.to_dict() == {"updated": 4, "failed": 0}
    assert document.get_node("op0").characters == "FRESHBUS"
    assert document.get_node("price2").characters == "₹1,250"


async def test_bus_results_are_written_in_wire_shape():
    document = make_document([frame("card0", "Card @[0]", [text("dur", "@{duration}"), text("ac", "@{isAc}")])])
    bus = BusResult(operator="X", duration="7h 15m", is_ac=True)

    report = await apply_records(document, [bus], scope="page")

    assert report.updated == 2
    assert document.get_node("dur").characters == "7h 15m"
    assert document.get_node("ac").characters == "true"


async def test_missing_font_counts_as_failure_and_continues():
    document = make_document([
        frame("card0", "Card @[0]", [
            text("op0", "@{operator}", font="Brand Bold"),
            text("price0", "@{price}"),
        ]),
    ])
    document.missing_fonts = {"Brand Bold"}

    report = await apply_records(document, [{"operator": "X", "price": 500}], scope="page")

    assert report.to_dict() == {"updated": 1, "failed": 1}
    assert document.get_node("price0").characters == "500"


async def test_field_layer_without_text_node_fails():
    document = make_document([
        frame("card0", "Card @[0]", [
            frame("badge", "@{rating}", [text("badge_text", "Label")]),
            frame("seats", "@{seatsAvailable}", node_type="RECTANGLE"),
        ]),
    ])

    report = await apply_records(document, [{"rating": "4.5", "seatsAvailable": 12}], scope="page")

    assert report.to_dict() == {"updated": 1, "failed": 1}
    assert document.get_node("badge_text").characters == "4.5"


def test_duplicate_frame_index_last_wins():
    document = make_document([frame("a", "Card @[0]"), frame("b", "Other @[0]")])
    frames = find_indexed_frames(document, document.nodes_for_scope("page"))
    assert frames[0].id == "b"


def test_selection_scope_falls_back_to_page():
    document = make_document([frame("a", "Card @[0]"), frame("b", "Card @[1]")], selection=["b"])
    assert list(find_indexed_frames(document, document.nodes_for_scope("selection"))) == [1]
    document.selection = ["missing"]
    assert sorted(find_indexed_frames(document, document.nodes_for_scope("selection"))) == [0, 1]


def test_selector_requests_for_all_and_group_containers():
    document = make_document([
        frame("list", "Cards @{.card}.all", [text("title", "Title @{h2}")]),
        frame("grp", "@{.item}.group[1]", [text("name", "@{.name}")]),
        text("head", "Heading @{h1}"),
    ])
    layers = find_scraper_layers(document, document.nodes_for_scope("page"))
    requests = {r.id: r for r in build_selector_requests(document, layers)}

    assert "grp" not in requests
    assert requests["title"].selector == ".card h2"
    assert requests["title"].index is None
    assert requests["name"].selector == ".name"
    assert requests["name"].index == 1
    assert requests["head"].selector == "h1"
    assert requests["head"].type == "text"
    assert requests["list"].modifier == "all"


def test_detected_layer_summary():
    document = make_document([frame("grp", "Cards @{.item}.group[2]"), text("t", "@{h1}")])
    detected = [to_detected_layer(l) for l in find_scraper_layers(document, document.nodes_for_scope("page"))]
    assert detected[0].to_dict() == {
        "id": "grp", "name": "Cards", "selector": ".item", "type": "image", "modifier": "group[2]",
    }
    assert detected[1].to_dict() == {"id": "t", "name": "h1", "selector": "h1", "type": "text"}


async def test_all_results_clone_template_below_original():
    document = make_document([{**text("price", "@{.price}.all", y=10)}])
    results = [
        ExtractedResult(id=f"price_{i}", original_id="price", index=i, found=True, data=f"₹{i}00")
        for i in range(3)
    ]

    report = await apply_results(document, results)

    assert report.to_dict() == {"updated": 3, "failed": 0}
    assert document.get_node("price").characters == "₹000"
    first, second = document.get_node("price:c1"), document.get_node("price:c2")
    assert first.characters == "₹100"
    assert first.y == 10 + 1 * (20 + CLONE_GUTTER)
    assert second.characters == "₹200"
    assert second.y == 10 + 2 * (20 + CLONE_GUTTER)
    assert len(document.page.children) == 3


async def test_clones_respect_max_count():
    document = make_document([text("price", "@{.price}.all")])
    results = [
        ExtractedResult(id=f"price_{i}", original_id="price", index=i, found=True, data=str(i))
        for i in range(4)
    ]

    report = await apply_results(document, results, max_count=2)

    assert report.updated == 2
    assert len(document.page.children) == 2


async def test_image_and_missing_results():
    document = make_document([
        frame("hero", "@{img.hero}", node_type="RECTANGLE"),
        text("title", "@{h1}"),
    ])
    results = [
        ExtractedResult(id="hero", found=True, type="image", data="https://cdn/x.png", image_bytes=b"\x89PNG"),
        ExtractedResult(id="title", found=False, error="Element not found for selector: h1"),
        ExtractedResult(id="ghost", found=True, data="x"),
    ]
    progress = []

    report = await apply_results(document, results, on_progress=lambda c, t: progress.append((c, t)))

    assert report.to_dict() == {"updated": 1, "failed": 2}
    assert document.get_node("hero").fills[0]["type"] == "IMAGE"
    assert progress == [(1, 3), (2, 3), (3, 3)]

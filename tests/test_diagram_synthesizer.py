from brainstormer.models.elements import Connector, Shape, TextElement, connectors_in, shapes_in
from brainstormer.tools.diagram_synthesizer import is_connector_record, record_label, synthesize_records, synthesize_step
from brainstormer.tools.element_factory import make_labeled_shape


def _labels(elements):
    return [shape.label for shape in shapes_in(elements)]


def test_shapes_and_connector_by_batch_ids():
    records = [
        {"id": "u", "type": "rectangle", "label": "User"},
        {"id": "lb", "type": "diamond", "label": "Load Balancer"},
        {"type": "arrow", "start": "u", "end": "lb"},
    ]
    result = synthesize_records(records, [])
    shapes = shapes_in(result.elements)
    connectors = connectors_in(result.elements)
    assert [shape.type for shape in shapes] == ["rectangle", "diamond"]
    assert len([e for e in result.elements if isinstance(e, TextElement)]) == 2
    assert len(connectors) == 1
    assert connectors[0].start_id == shapes[0].id
    assert connectors[0].end_id == shapes[1].id
    assert not result.used_fallback


def test_connector_references_as_objects_and_labels():
    records = [
        {"id": "a", "label": "Client"},
        {"id": "b", "label": "API Gateway"},
        {"type": "arrow", "startBinding": {"elementId": "a"}, "endBinding": {"id": "b"}},
        {"from": "api gateway", "to": "CLIENT"},
    ]
    result = synthesize_records(records, [])
    client, gateway = shapes_in(result.elements)
    edges = [(c.start_id, c.end_id) for c in connectors_in(result.elements)]
    assert edges == [(client.id, gateway.id), (gateway.id, client.id)]


def test_labels_deduplicate_against_board_case_insensitively():
    first = synthesize_records([{"label": "User"}], [])
    second = synthesize_records([{"label": "  user  "}, {"type": "arrow", "from": "user", "to": "User"}], first.elements)
    assert second.elements == []


def test_labels_deduplicate_within_batch():
    result = synthesize_records([{"label": "Cache"}, {"label": "cache"}], [])
    assert _labels(result.elements) == ["Cache"]


def test_record_id_aliases_existing_shape():
    user, text = make_labeled_shape("rectangle", 100, 100, None, None, "User")
    records = [
        {"id": "n1", "label": "User"},
        {"id": "n2", "type": "ellipse", "label": "Cache"},
        {"type": "arrow", "start": "n1", "end": "n2"},
    ]
    result = synthesize_records(records, [user, text])
    assert _labels(result.elements) == ["Cache"]
    connector = connectors_in(result.elements)[0]
    assert connector.start_id == user.id


def test_unresolved_connector_is_skipped():
    result = synthesize_records([{"type": "arrow", "start": "ghost", "end": "phantom"}], [])
    assert result.elements == []


def test_duplicate_connector_is_not_repeated():
    records = [
        {"id": "a", "label": "A"},
        {"id": "b", "label": "B"},
        {"type": "arrow", "start": "a", "end": "b"},
        {"type": "line", "start": "A", "end": "B"},
    ]
    result = synthesize_records(records, [])
    assert len(connectors_in(result.elements)) == 1


def test_missing_coordinates_use_grid_slots():
    result = synthesize_records([{"label": "A"}, {"label": "B"}, {"label": "C", "x": 5, "y": "7"}], [])
    positions = [(shape.x, shape.y) for shape in shapes_in(result.elements)]
    assert positions == [(100, 100), (350, 100), (5, 7)]


def test_unknown_and_text_types_become_rectangles():
    result = synthesize_records([{"type": "cloud", "label": "S3"}, {"type": "text", "text": "Note"}], [])
    assert [(s.type, s.label) for s in shapes_in(result.elements)] == [("rectangle", "S3"), ("rectangle", "Note")]


def test_records_without_label_or_not_mappings_are_skipped():
    assert synthesize_records([{"type": "rectangle"}, "junk", 3], []).elements == []


def test_record_helpers():
    assert record_label({"name": " Queue "}) == "Queue"
    assert record_label({"label": {"text": "Inline"}}) == "Inline"
    assert is_connector_record({"type": "Arrow"})
    assert is_connector_record({"source": "a"})
    assert not is_connector_record({"type": "rectangle", "label": "A"})


def test_step_uses_fallback_only_when_records_yield_nothing():
    fallback = synthesize_step("Add a database", [], [])
    assert fallback.used_fallback
    assert _labels(fallback.elements) == ["Database"]

    structured = synthesize_step("Add a database", [{"label": "Primary DB"}], [])
    assert not structured.used_fallback
    assert _labels(structured.elements) == ["Primary DB"]

    disabled = synthesize_step("Add a database", [], [], allow_fallback=False)
    assert disabled.elements == []


def test_created_elements_have_expected_types():
    result = synthesize_records([{"id": "a", "label": "A"}, {"id": "b", "label": "B"}, {"start": "a", "end": "b"}], [])
    assert [type(e) for e in result.elements] == [Shape, TextElement, Shape, TextElement, Connector]


def test_non_finite_and_invalid_numbers_fall_back_to_defaults():
    records = [{"label": "A", "x": float("inf"), "y": float("nan"), "width": -50, "height": "1e400"}]
    shape = shapes_in(synthesize_records(records, []).elements)[0]
    assert (shape.x, shape.y) == (100, 100)
    assert (shape.width, shape.height) == (120, 60)


def test_zero_size_is_rejected_but_finite_coordinates_are_kept():
    records = [{"label": "B", "x": -40, "y": "12.5", "width": 0, "height": 80}]
    shape = shapes_in(synthesize_records(records, []).elements)[0]
    assert (shape.x, shape.y) == (-40, 12.5)
    assert (shape.width, shape.height) == (120, 80)

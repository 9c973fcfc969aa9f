from highlightcut.ai.lenient_json import decode_lenient


def test_plain_json() -> None:
    assert decode_lenient('[{"index": 1}]').value == [{"index": 1}]


def test_fenced_json() -> None:
    res = decode_lenient('```json\n{"a": 1}\n```')
    assert res.ok and res.value == {"a": 1}


def test_fence_inside_prose() -> None:
    res = decode_lenient('Here you go:\n```\n[1, 2]\n```\nDone.')
    assert res.ok and res.value == [1, 2]


def test_array_inside_prose() -> None:
    res = decode_lenient('Scores: [{"index": 0, "importance": 5}] hope this helps')
    assert res.value == [{"index": 0, "importance": 5}]


def test_object_inside_prose() -> None:
    res = decode_lenient('Sure! {"frameQuality": 0.8, "visualInterest": 0.6} thanks')
    assert res.value == {"frameQuality": 0.8, "visualInterest": 0.6}


def test_empty_and_garbage() -> None:
    assert decode_lenient("").error == "empty response"
    assert decode_lenient(None).ok is False
    res = decode_lenient("no json at all")
    assert res.ok is False
    assert res.error.startswith("unparsable response")

import math

from conftest import add_gift


def _names(rows):
    return [row["name"] for row in rows]


def test_budget_overlap_is_inclusive(db):
    add_gift(db, "Cheap", "$1-$10")
    add_gift(db, "Edge", "$10-$20")
    add_gift(db, "Middle", "$15-$30")
    add_gift(db, "Pricey", "$200-$300")

    assert _names(db.query_by_budget(20, 100)) == ["Edge", "Middle"]
    assert _names(db.query_by_budget(0, 10)) == ["Cheap", "Edge"]


def test_unbounded_budget_has_no_upper_limit(db):
    add_gift(db, "Cheap", "$1-$10")
    add_gift(db, "Pricey", "$800-$1000")

    assert _names(db.query_by_budget(500, math.inf)) == ["Pricey"]
    assert _names(db.query_by_budget(0, math.inf)) == ["Cheap", "Pricey"]


def test_tag_filter_matches_case_insensitively_without_duplicates(db):
    add_gift(db, "Book", "$10-$30", tags={"interest": ["reading"], "age": ["adults"]})
    add_gift(db, "Drum", "$10-$30", tags={"interest": ["music"]})

    rows = db.query_by_budget(0, 100, ["Reading", "ADULTS"])

    assert _names(rows) == ["Book"]


def test_insert_and_fetch_roundtrip(db):
    gift_id = add_gift(db, "Лампа", "$20-$40", tags={"occasion": ["birthday"]}, name_en="Lamp")

    gift = db.get_gift(gift_id)
    assert gift["name_en"] == "Lamp"
    assert gift["ai_generated"] is False
    assert (gift["budget_min"], gift["budget_max"]) == (20.0, 40.0)
    assert db.get_gift_tags(gift_id) == {"occasion": ["birthday"]}
    assert db.exists_by_name("Лампа")
    assert not db.exists_by_name("Lamp")


def test_missing_images_and_update(db):
    first = add_gift(db, "A", "$1-$2")
    add_gift(db, "B", "$1-$2", image_url="https://img.test/b.jpg")

    assert [row["id"] for row in db.list_gifts_missing_images(10)] == [first]
    db.update_image(first, "https://img.test/a.jpg")
    assert db.list_gifts_missing_images(10) == []


def test_delete_cascades_tags(db):
    gift_id = add_gift(db, "Book", "$10-$30", tags={"interest": ["reading"]})

    assert db.delete_gifts([gift_id]) == 1
    assert db.get_gift_tags(gift_id) == {}
    assert db.stats()["gift_count"] == 0
    assert db.stats()["tag_count"] == 1

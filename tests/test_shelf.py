"""
tests/test_shelf.py
"""
from __future__ import annotations

from quire.blog import (
    FAVORITE,
    MUST_READ,
    create_shelf,
    get_db,
    get_shelf,
    list_shelf,
    set_favorites,
    set_must_reads,
    shelf_fields,
    update_shelf,
)


def _login(client) -> None:
    with client.session_transaction() as sess:
        sess["logged_in"] = True


def _badged(kind: str, badge: str) -> set[str]:
    return {r["id"] for r in list_shelf(db=get_db(), kind=kind) if r["badge"] == badge}


# ───────────────────────── field coercion ─────────────────────────────
def test_shelf_fields_coercion():
    fields = shelf_fields(
        {"type": "zine", "title": "  Dune ", "author": "   ", "year": "19x5"}
    )
    assert fields == {"type": "book", "title": "Dune", "author": None, "year": None}


def test_shelf_fields_parses_year():
    assert shelf_fields({"year": " 1965 "}) == {"year": 1965}


def test_shelf_fields_leaves_missing_keys_out():
    assert shelf_fields({}) == {}


# ───────────────────────── store ──────────────────────────────────────
def test_shelf_order_year_then_created(client):
    db = get_db()
    for title, year in [("m-old", 1999), ("m-none", None), ("m-new-a", 2021), ("m-new-b", 2021)]:
        create_shelf({"type": "movie", "title": title, "year": year}, db=db)

    rows = list_shelf(db=db, kind="movie")
    years = [r["year"] for r in rows]
    known = [y for y in years if y is not None]
    assert known == sorted(known, reverse=True)
    assert years.index(None) > max(i for i, y in enumerate(years) if y is not None)

    titles = [r["title"] for r in rows]
    assert titles.index("m-new-b") < titles.index("m-new-a") < titles.index("m-old")


def test_favorites_are_exclusive_per_type(client):
    db = get_db()
    a, b, c = (create_shelf({"type": "book", "title": t}, db=db) for t in ("A", "B", "C"))
    set_favorites("book", [c["id"]], db=db)
    assert c["id"] in _badged("book", FAVORITE)

    set_favorites("book", [a["id"], b["id"], "missing-id"], db=db)
    assert _badged("book", FAVORITE) == {a["id"], b["id"]}


def test_favorites_ignore_other_types(client):
    db = get_db()
    essay = create_shelf({"type": "essay", "title": "On Exactitude"}, db=db)
    set_favorites("book", [essay["id"]], db=db)
    assert get_shelf(essay["id"], db=db)["badge"] is None


def test_badge_is_single_valued(client):
    db = get_db()
    item = create_shelf({"type": "essay", "title": "Both?"}, db=db)
    set_favorites("essay", [item["id"]], db=db)
    set_must_reads("essay", [item["id"]], db=db)
    assert get_shelf(item["id"], db=db)["badge"] == MUST_READ
    assert item["id"] not in _badged("essay", FAVORITE)

    set_must_reads("essay", [], db=db)
    assert _badged("essay", MUST_READ) == set()


def test_update_shelf_is_partial(client):
    db = get_db()
    item = create_shelf({"type": "book", "title": "Draft", "author": "Someone", "year": 2001}, db=db)
    assert update_shelf(item["id"], {"title": "Final", "review": "great"}, db=db)
    fresh = get_shelf(item["id"], db=db)
    assert (fresh["title"], fresh["author"], fresh["year"], fresh["review"]) == (
        "Final", "Someone", 2001, "great",
    )
    assert update_shelf("missing", {"title": "x"}, db=db) is False


# ───────────────────────── routes ─────────────────────────────────────
def test_add_update_delete_routes(client):
    _login(client)
    rv = client.post(
        "/admin/shelf/add",
        data={"type": "book", "title": "Route Book", "author": "R. Author", "year": "abc",
              "url": "https://example.com/book", "review": "fine"},
    )
    assert rv.status_code == 302 and rv.headers["Location"].endswith("/shelf")

    row = next(r for r in list_shelf(db=get_db(), kind="book") if r["title"] == "Route Book")
    assert row["year"] is None
    assert row["author"] == "R. Author"

    page = client.get("/shelf").data.decode()
    assert "Route Book" in page and 'href="https://example.com/book"' in page

    client.post(f"/admin/shelf/update/{row['id']}", data={"type": "book", "title": "Route Book", "year": "2010"})
    assert get_shelf(row["id"], db=get_db())["year"] == 2010

    for _ in range(2):
        rv = client.post(f"/admin/shelf/delete/{row['id']}")
        assert rv.status_code == 302
    assert get_shelf(row["id"], db=get_db()) is None


def test_favorites_route(client):
    db = get_db()
    x, y = (create_shelf({"type": "movie", "title": t}, db=db) for t in ("X", "Y"))
    _login(client)
    rv = client.post("/admin/shelf/favorites", data={"type": "movie", "ids": [x["id"], y["id"]]})
    assert rv.status_code == 302 and rv.headers["Location"].endswith("/shelf")
    assert _badged("movie", FAVORITE) == {x["id"], y["id"]}

    client.post("/admin/shelf/must-reads", data={"type": "movie", "ids": [y["id"]]})
    assert _badged("movie", MUST_READ) == {y["id"]}
    assert _badged("movie", FAVORITE) == {x["id"]}

    assert FAVORITE in client.get("/shelf").data.decode()


def test_badge_route_ignores_unknown_type(client):
    db = get_db()
    item = create_shelf({"type": "book", "title": "Untouched"}, db=db)
    _login(client)
    client.post("/admin/shelf/favorites", data={"type": "podcast", "ids": [item["id"]]})
    assert get_shelf(item["id"], db=db)["badge"] is None

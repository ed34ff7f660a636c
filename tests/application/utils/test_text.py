from mneme.application.utils.text import (
    make_tag_lookup,
    normalize_tags,
    note_tags,
    parse_frontmatter,
)


def test_parse_frontmatter_basic():
    meta, body = parse_frontmatter("---\ntags: [bio, cell]\n---\n# Title\n")
    assert meta == {"tags": ["bio", "cell"]}
    assert body == "# Title\n"


def test_parse_frontmatter_none():
    text = "# Just a note\n"
    assert parse_frontmatter(text) == ({}, text)


def test_parse_frontmatter_unclosed():
    text = "---\ntags: bio\n# no close"
    assert parse_frontmatter(text) == ({}, text)


def test_parse_frontmatter_bom_and_tabs():
    meta, _ = parse_frontmatter("\ufeff---\nnested:\n\tkey: v\n---\nbody")
    assert meta == {"nested": {"key": "v"}}


def test_parse_frontmatter_bad_yaml():
    meta, _ = parse_frontmatter("---\ntags: [unclosed\n---\n")
    assert "__yaml_error__" in meta


def test_normalize_tags():
    assert normalize_tags(None) == []
    assert normalize_tags("bio") == ["bio"]
    assert normalize_tags("#bio, chem") == ["bio", "chem"]
    assert normalize_tags(["#a", "b", None]) == ["a", "b"]
    assert normalize_tags(42) == ["42"]


def test_note_tags(mock_vault):
    (mock_vault / "notes").mkdir()
    (mock_vault / "notes" / "bio.md").write_text("---\ntags:\n  - bio\n  - exam\n---\nBody\n")
    (mock_vault / "broken.md").write_text("---\ntags: [x\n---\n")

    assert note_tags(mock_vault, "notes/bio.md") == ["bio", "exam"]
    assert note_tags(mock_vault, "broken.md") == []
    assert note_tags(mock_vault, "missing.md") == []


def test_make_tag_lookup_caches(mock_vault):
    note = mock_vault / "n.md"
    note.write_text("---\ntags: one\n---\n")

    lookup = make_tag_lookup(mock_vault)
    assert lookup("n.md") == ["one"]

    note.write_text("---\ntags: two\n---\n")
    assert lookup("n.md") == ["one"]

    assert make_tag_lookup(None) is None

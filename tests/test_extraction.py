from contact_discovery.extraction import (
    canonicalize_url,
    is_followable_href,
    is_same_site,
    iter_json_ld,
    iter_strings,
    matches_contact_keyword,
    parse_html,
    url_key,
    visible_text,
)


def test_canonicalize_url_and_comparison_key() -> None:
    assert canonicalize_url("/contact#form", "https://brand.io/about") == "https://brand.io/contact"
    assert url_key("https://WWW.Brand.io/contact/") == "brand.io/contact"
    assert url_key("http://www.brand.io/contact/") == url_key("https://brand.io/contact")
    assert url_key("https://brand.io/contact?lang=en") == "brand.io/contact?lang=en"


def test_is_followable_href() -> None:
    assert is_followable_href("/contact") is True
    assert is_followable_href("#top") is False
    assert is_followable_href("mailto:a@brand.io") is False
    assert is_followable_href("javascript:void(0)") is False
    assert is_followable_href("/media/brochure.PDF") is False


def test_same_site_uses_registrable_domain() -> None:
    assert is_same_site("https://shop.brand.co.uk/contact", "brand.co.uk") is True
    assert is_same_site("https://brand.co.uk.evil.io/", "brand.co.uk") is False
    assert is_same_site("https://brand.io/", "") is False


def test_matches_contact_keyword() -> None:
    assert matches_contact_keyword("Write for us", "/pitch") is True
    assert matches_contact_keyword("Blog", "/blog") is False


def test_visible_text_strips_scripts_and_styles() -> None:
    text = visible_text("<style>p{}</style><p>Hello</p><script>var x = 1;</script>")
    assert text.strip() == "Hello"


def test_iter_json_ld_flattens_graphs_and_skips_broken_blocks() -> None:
    html = """
    <script type="application/ld+json">{broken</script>
    <script type="application/ld+json">
    {"@graph": [{"@type": "Organization", "name": "Brand"}, {"@type": "Person"}]}
    </script>
    """
    types = [node.get("@type") for node in iter_json_ld(parse_html(html))]
    assert types == [None, "Organization", "Person"]


def test_iter_strings_walks_nested_values() -> None:
    payload = {"a": ["x", {"b": "y"}], "c": 3, "d": None}
    assert list(iter_strings(payload)) == ["x", "y"]

"""Content extraction tests."""

import pytest
from bs4 import BeautifulSoup

from pagecrawl.crawl.extractor import ContentExtractor, select_value, strip_noise, to_markdown
from pagecrawl.crawl.models import CustomRule, ExtractionSchema

URL = "https://news.example.com/2024/story"

BODY_TEXT = "The quick brown fox jumps over the lazy dog. " * 3

ARTICLE_PAGE = f"""
<html>
<head>
  <title>Fallback Title</title>
  <meta property="og:title" content="Open Graph Title">
  <meta name="author" content="Jane Doe">
  <meta property="article:published_time" content="2024-03-01T10:00:00Z">
  <script>var tracking = true;</script>
</head>
<body>
  <nav><a href="/">Home</a> <a href="/about">About us navigation</a></nav>
  <div class="sidebar">Sidebar links that are not content at all, really.</div>
  <article>
    <h1>Headline</h1>
    <p>{BODY_TEXT}</p>
    <img src="/img/photo.jpg" alt="photo">
    <script>alert("inline");</script>
  </article>
  <div class="ad">Buy now</div>
  <footer>Copyright</footer>
</body>
</html>
"""


def test_metadata_fields_from_fallback_chains():
    data = ContentExtractor().extract(ARTICLE_PAGE, URL)
    assert data.title == "Open Graph Title"
    assert data.author == "Jane Doe"
    assert data.publish_date == "2024-03-01T10:00:00Z"


def test_article_is_selected_and_noise_removed():
    data = ContentExtractor().extract(ARTICLE_PAGE, URL)
    assert "quick brown fox" in data.content
    assert "Home" not in data.content
    assert "Sidebar" not in data.content
    assert "Buy now" not in data.content
    assert "<script" not in data.content
    assert data.cleaned_html == data.content
    assert "quick brown fox" in data.text
    assert "<p>" not in data.text


def test_short_article_still_beats_navigation():
    html = "<article><h1>Main Article</h1><p>This is the main content.</p></article><nav>Navigation</nav>"
    data = ContentExtractor().extract(html, URL)
    assert "Main Article" in data.content
    assert "main content" in data.content
    assert "Navigation" not in data.content


def test_og_title_wins_over_title_tag():
    html = '<head><title>Tag title</title><meta property="og:title" content="OG title"></head>'
    assert ContentExtractor().extract(html, URL).title == "OG title"


def test_image_resolution_example():
    html = '<img src="/img/a.png"><img src="https://other.com/b.png"><img src="data:image/png;base64,AAAA">'
    data = ContentExtractor().extract(html, "https://example.com/page")
    assert data.images == ["https://example.com/img/a.png", "https://other.com/b.png"]


def test_images_are_resolved_against_page_url():
    data = ContentExtractor().extract(ARTICLE_PAGE, URL)
    assert data.images == ["https://news.example.com/img/photo.jpg"]


def test_images_skipped_when_disabled():
    data = ContentExtractor().extract(ARTICLE_PAGE, URL, extract_images=False)
    assert data.images is None


def test_images_deduplicated_and_data_uris_dropped():
    html = """
    <body>
      <img src="a.png"><img data-src="/b.png"><img src="a.png">
      <img src="data:image/png;base64,AAAA">
    </body>
    """
    data = ContentExtractor().extract(html, "https://site.example/dir/page")
    assert data.images == ["https://site.example/dir/a.png", "https://site.example/b.png"]


def test_title_falls_back_to_title_tag_then_h1():
    assert ContentExtractor().extract("<title> T </title><p>x</p>", URL).title == "T"
    assert ContentExtractor().extract("<body><h1>Heading</h1></body>", URL).title == "Heading"


def test_schema_selectors_take_precedence():
    html = f"""
    <body>
      <h1>Default heading</h1>
      <h2 class="headline">Schema heading</h2>
      <span class="byline">By Someone</span>
      <div id="story"><p>{BODY_TEXT}</p></div>
      <article><p>{BODY_TEXT} article copy</p></article>
    </body>
    """
    schema = ExtractionSchema(title=".headline", author=".byline", content="#story")
    data = ContentExtractor(schema).extract(html, URL)
    assert data.title == "Schema heading"
    assert data.author == "By Someone"
    assert "article copy" not in data.content


def test_schema_selector_miss_falls_back_to_lookups():
    schema = ExtractionSchema(title=".missing")
    data = ContentExtractor(schema).extract("<title>Page</title>", URL)
    assert data.title == "Page"


def test_short_schema_content_falls_back_to_heuristics():
    html = f'<body><div id="tiny">hi</div><main><p>{BODY_TEXT}</p></main></body>'
    data = ContentExtractor(ExtractionSchema(content="#tiny")).extract(html, URL)
    assert "quick brown fox" in data.content


def test_content_never_empty_when_body_has_text():
    data = ContentExtractor().extract("<body><span>short text</span></body>", URL)
    assert "short text" in data.content


def test_content_empty_string_for_empty_document():
    data = ContentExtractor().extract("", URL)
    assert data.content == ""
    assert data.title is None


def test_nav_wrapping_article_is_kept():
    html = f"<body><nav><article><p>{BODY_TEXT}</p></article></nav></body>"
    data = ContentExtractor().extract(html, URL)
    assert "quick brown fox" in data.content


def test_custom_rules_write_metadata():
    html = """
    <body>
      <span class="price">1234</span>
      <a class="canonical" href="https://example.com/c">link</a>
    </body>
    """
    schema = ExtractionSchema(
        custom=(
            CustomRule(name="price", selector=".price", transform=int),
            CustomRule(name="canonical", selector=".canonical", attribute="href"),
            CustomRule(name="missing", selector=".nope"),
        )
    )
    data = ContentExtractor(schema).extract(html, URL)
    assert data.metadata == {"price": 1234, "canonical": "https://example.com/c"}


def test_custom_rule_transform_error_propagates():
    schema = ExtractionSchema(custom=(CustomRule(name="n", selector="span", transform=int),))
    with pytest.raises(ValueError):
        ContentExtractor(schema).extract("<span>not a number</span>", URL)


def test_markdown_renders_images_and_drops_srcless():
    markdown = to_markdown('<p>Hello</p><img src="x.jpg" alt="a"><img alt="nosrc">')
    assert "![a](x.jpg)" in markdown
    assert "nosrc" not in markdown


def test_select_value_reads_meta_content():
    soup = BeautifulSoup('<meta name="author" content=" Ann ">', "html.parser")
    assert select_value(soup, 'meta[name="author"]') == "Ann"


def test_strip_noise_removes_scripts_and_chrome():
    soup = BeautifulSoup("<header>top</header><script>x</script><p>keep</p>", "html.parser")
    strip_noise(soup)
    assert str(soup) == "<p>keep</p>"

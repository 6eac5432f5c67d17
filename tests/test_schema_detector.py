"""Schema auto-detection tests."""

from pagecrawl.crawl.schema_detector import detect_schema


def test_detects_og_title_author_and_article():
    html = """
    <head>
      <meta property="og:title" content="Story">
      <meta name="author" content="Jane">
    </head>
    <body><article><p>text</p></article></body>
    """
    detection = detect_schema(html)
    assert detection.schema.title == 'meta[property="og:title"]'
    assert detection.schema.author == 'meta[name="author"]'
    assert detection.schema.content == "article"
    assert detection.confidence == 0.8
    assert len(detection.suggestions) == 3


def test_h1_preferred_over_title_tag():
    detection = detect_schema("<title>T</title><h1>Heading</h1><main>x</main>")
    assert detection.schema.title == "h1"
    assert detection.schema.content == "main"
    assert detection.confidence == 0.5


def test_content_class_fallbacks():
    assert detect_schema('<div class="post entry-content">x</div>').schema.content == ".entry-content"
    assert detect_schema('<div class="page-content">x</div>').schema.content == ".content"


def test_nothing_detected():
    detection = detect_schema("<p>plain</p>")
    assert detection.schema.title is None
    assert detection.schema.content is None
    assert detection.confidence == 0.0
    assert detection.suggestions == []

from echo_brain.adapters.html_extract import HtmlTextExtractor

PAGE = """
<html>
  <head>
    <title>  Fallback   title </title>
    <meta property="og:title" content="Why Rust?">
    <meta name="author" content="Jane Doe">
    <style>body { color: red }</style>
  </head>
  <body>
    <header><nav>Home | Blog</nav></header>
    <article>
      <h1>Why Rust?</h1>
      <p>Ownership   makes memory safety
         a compile-time property.</p>
      <script>track();</script>
      <p>Borrowing &amp; lifetimes follow.</p>
    </article>
    <footer>(c) 2026</footer>
  </body>
</html>
"""


def test_extracts_article_text_and_metadata():
    page = HtmlTextExtractor().extract(PAGE)
    assert page.title == "Why Rust?"
    assert page.author == "Jane Doe"
    assert "Ownership makes memory safety" in page.text
    assert "Borrowing & lifetimes follow." in page.text
    for noise in ("Home | Blog", "track()", "(c) 2026", "color: red"):
        assert noise not in page.text


def test_falls_back_to_body_and_title_tag():
    page = HtmlTextExtractor().extract("<html><head><title>Notes</title></head><body><p>plain body</p></body></html>")
    assert page.text == "plain body"
    assert page.title == "Notes"
    assert page.author is None


def test_empty_document():
    page = HtmlTextExtractor().extract("")
    assert page.text == ""
    assert page.title is None

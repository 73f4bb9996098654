from caselens.ingestion.text_normalizer import collapse_whitespace, normalize_text

def test_normalize_empty():
    assert normalize_text("") == ""
    assert normalize_text(None) == ""

def test_normalize_whitespace():
    assert normalize_text("  hello   world  ") == "hello world"
    assert normalize_text("hello\tworld") == "hello world"

def test_normalize_newlines():
    # Single newlines preserved, multiple collapsed to 2
    text = "Line 1\nLine 2\n\n\nLine 3"
    expected = "Line 1\nLine 2\n\nLine 3"
    assert normalize_text(text) == expected

def test_normalize_windows_line_endings():
    assert normalize_text("Line 1\r\nLine 2\rLine 3") == "Line 1\nLine 2\nLine 3"

def test_normalize_null_chars():
    assert normalize_text("hello\x00world") == "helloworld"

def test_collapse_whitespace():
    assert collapse_whitespace(" a \n\n b\tc ") == "a b c"

from __future__ import annotations

from flagsync.comments import classify_line, iter_code_lines


def test_single_line_comment_is_comment() -> None:
    result = classify_line("  // feature_x is gone", False, "c")
    assert result.is_comment
    assert not result.in_block


def test_code_before_line_comment_is_kept() -> None:
    result = classify_line('run("feature_x"); // feature_y', False, "c")
    assert not result.is_comment
    assert "feature_x" in result.code
    assert "feature_y" not in result.code


def test_block_opened_and_closed_mid_line_keeps_both_sides() -> None:
    line = "before(); /* feature_y */ after_flag();"
    result = classify_line(line, False, "c")
    assert not result.in_block
    assert "before" in result.code
    assert "after_flag" in result.code
    assert "feature_y" not in result.code
    assert len(result.code) == len(line)


def test_block_comment_spans_lines() -> None:
    opened = classify_line("x = 1; /* start feature_a", False, "c")
    assert opened.in_block
    assert "feature_a" not in opened.code

    middle = classify_line("   feature_b inside", True, "c")
    assert middle.is_comment
    assert middle.in_block

    closed = classify_line(" end */ call(feature_c);", True, "c")
    assert not closed.in_block
    assert "feature_c" in closed.code


def test_first_closing_token_wins() -> None:
    result = classify_line("/* outer /* inner */ visible(); */", False, "c")
    assert "visible" in result.code
    assert not result.in_block


def test_markers_inside_strings_are_ignored() -> None:
    result = classify_line('url = "http://example.com/feature_z";', False, "c")
    assert "feature_z" in result.code


def test_python_hash_and_docstrings() -> None:
    assert classify_line("# feature_x", False, "python").is_comment
    one_line = classify_line('"""feature_x docs"""', False, "python")
    assert one_line.is_comment
    assert not one_line.in_block

    opened = classify_line('x = """feature_x', False, "python")
    assert opened.in_block
    assert "feature_x" not in opened.code
    closed = classify_line('still text""" + flag_call()', True, "python")
    assert not closed.in_block
    assert "flag_call" in closed.code


def test_php_supports_hash_and_slashes() -> None:
    assert classify_line("# feature_a", False, "php").is_comment
    assert classify_line("// feature_a", False, "php").is_comment
    assert classify_line("/* feature_a */", False, "php").is_comment


def test_blank_line_is_not_a_comment() -> None:
    result = classify_line("   ", False, "c")
    assert not result.is_comment


def test_iter_code_lines_skips_comment_only_lines() -> None:
    text = "/*\n feature_a\n*/\nuse(feature_a)\n"
    lines = list(iter_code_lines(text, "c"))
    assert [number for number, _, _ in lines] == [4]


def test_python_block_only_closes_on_matching_quotes() -> None:
    text = "x = \"\"\"it's '''quoted\n\"\"\"\nuse(feature_x)\n"
    lines = list(iter_code_lines(text, "python"))
    assert [number for number, _, _ in lines] == [1, 3]

    opened = classify_line("y = '''text \"\"\" more", False, "python")
    assert opened.in_block
    assert opened.closer == "'''"
    still_open = classify_line('"""', True, "python", opened.closer)
    assert still_open.in_block
    assert still_open.is_comment

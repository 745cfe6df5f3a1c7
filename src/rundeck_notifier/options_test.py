from __future__ import annotations

import pytest

from rundeck_notifier.options import (
    OptionParseError,
    expand_artifact_names,
    expand_options,
    expand_variables,
    parse_properties,
)


@pytest.mark.parametrize("text", [None, "", "   ", "\n\t \n", " \f "])
def test_blank_text_gives_empty_dict(text, console):
    assert expand_options(text, {}, [], console) == {}


def test_plain_lines_come_back_unchanged(console):
    text = "env=prod\nversion=1.2.3\nurl=http://example.com/a?b=c"
    assert expand_options(text, {}, [], console) == {
        "env": "prod",
        "version": "1.2.3",
        "url": "http://example.com/a?b=c",
    }


def test_environment_variables_are_expanded(console):
    text = "version=${VERSION}\nbuild=$BUILD_NUMBER\nmissing=${NOPE}"
    result = expand_options(text, {"VERSION": "2.0", "BUILD_NUMBER": "7"}, [], console)
    assert result == {"version": "2.0", "build": "7", "missing": "${NOPE}"}


def test_environment_callable_failure_is_not_fatal(console, log):
    def broken_env():
        raise OSError("no environment")

    result = expand_options("version=${VERSION}", broken_env, [], console)

    assert result == {"version": "${VERSION}"}
    assert "Failed to expand environment variables : no environment" in log.getvalue()


def test_expand_variables_does_not_reexpand_values():
    assert expand_variables("a=$X", {"X": "$Y", "Y": "boom"}) == "a=$Y"


def test_artifact_token_expands_to_first_match():
    text = r"file=$ARTIFACT_NAME{^build\.zip$}"
    assert expand_artifact_names(text, ["build.zip", "notes.txt"]) == "file=build.zip"


def test_artifact_token_without_match_is_left_alone():
    text = r"file=$ARTIFACT_NAME{^build\.zip$}"
    assert expand_artifact_names(text, ["notes.txt"]) == text


def test_artifact_token_uses_artifact_order():
    text = r"war=$ARTIFACT_NAME{app-.*\.war}"
    result = expand_artifact_names(text, ["app-1.0.war", "app-2.0.war"])
    assert result == "war=app-1.0.war"


def test_artifact_pattern_must_match_whole_name():
    text = r"f=$ARTIFACT_NAME{build}"
    assert expand_artifact_names(text, ["build.zip"]) == text


def test_artifact_tokens_on_several_lines():
    text = "a=$ARTIFACT_NAME{.*\\.zip}\nb=$ARTIFACT_NAME{.*\\.txt}\nc=$ARTIFACT_NAME{.*\\.jar}"
    result = expand_artifact_names(text, ["build.zip", "notes.txt"])
    assert result == "a=build.zip\nb=notes.txt\nc=$ARTIFACT_NAME{.*\\.jar}"


def test_replacement_text_is_not_scanned_again():
    # the inserted name itself looks like a token; scanning resumes after it
    artifacts = ["$ARTIFACT_NAME{x}", "x"]
    text = "a=$ARTIFACT_NAME{\\$ARTIFACT.*}"
    assert expand_artifact_names(text, artifacts) == "a=$ARTIFACT_NAME{x}"


def test_invalid_artifact_pattern_is_reported(console, log):
    text = "a=$ARTIFACT_NAME{[unclosed}"
    assert expand_artifact_names(text, ["x"], console) == text
    assert "Invalid artifact pattern" in log.getvalue()


def test_artifacts_and_variables_together(console):
    text = "artifact=$ARTIFACT_NAME{app-${VERSION}\\.war}"
    result = expand_options(text, {"VERSION": "1.4.2"}, ["app-1.4.2.war"], console)
    assert result == {"artifact": "app-1.4.2.war"}


def test_parse_properties_separators_and_comments():
    text = "\n".join([
        "# comment",
        "! another comment",
        "a=1",
        "b:2",
        "c 3",
        "d = spaced value ",
        "e",
        "  f=indented",
    ])
    assert parse_properties(text) == {
        "a": "1",
        "b": "2",
        "c": "3",
        "d": "spaced value ",
        "e": "",
        "f": "indented",
    }


def test_parse_properties_escapes_and_continuations():
    text = "key\\=with\\:seps=v\nmulti=one \\\n    two\ntab=a\\tb\nuni=\\u00e9t\\u00E9\nodd=back\\\\"
    assert parse_properties(text) == {
        "key=with:seps": "v",
        "multi": "one two",
        "tab": "a\tb",
        "uni": "été",
        "odd": "back\\",
    }


def test_later_keys_win():
    assert parse_properties("a=1\na=2") == {"a": "2"}


def test_malformed_unicode_escape_raises():
    with pytest.raises(OptionParseError):
        parse_properties("a=\\u12")


def test_malformed_text_returns_none_not_empty(console, log):
    assert expand_options("a=\\uZZZZ", {}, [], console) is None
    assert "Failed to parse : a=\\uZZZZ" in log.getvalue()

import json
import sys
from pathlib import Path

import pytest

import scripts.check_lesson as check_lesson

REPO_ROOT = Path(__file__).resolve().parent.parent

FRONT_MATTER = """---
title: "Example"
teaching: 10
exercises: 5
questions:
- "Why?"
objectives:
- "Learn."
keypoints:
- "Learned."
---
"""


def _errors(body: str, front_matter: str = FRONT_MATTER) -> list:
    text = front_matter + body
    issues = check_lesson.validate_front_matter("x.md", text) + check_lesson.validate_body("x.md", text)
    return [i for i in issues if i.severity == "error"]


def test_episode_passes():
    report = check_lesson.run_checks([REPO_ROOT / "episodes"])
    assert report.lessons_checked >= 1
    assert report.errors == [], [i.message for i in report.errors]


def test_valid_challenge_with_solution():
    body = (
        "> ## Challenge: try it\n"
        "> Do something.\n"
        ">\n"
        "> > ## Solution\n"
        "> > ~~~\n"
        "> > x = 1\n"
        "> > ~~~\n"
        "> > {: .language-python}\n"
        "> {: .solution}\n"
        "{: .challenge}\n"
    )
    assert _errors(body) == []


def test_ipython_magics_are_ignored():
    body = "~~~\n%timeit -n 1 -r 1 f(x)\n!nvidia-smi\ny = 2\n~~~\n{: .language-python}\n"
    assert _errors(body) == []


class TestFrontMatter:

    def test_missing(self):
        errors = _errors("text\n", front_matter="")
        assert [e.category for e in errors] == ["front_matter"]

    def test_unterminated(self):
        errors = _errors("", front_matter="---\ntitle: x\n")
        assert errors and errors[0].category == "front_matter"

    @pytest.mark.parametrize(
        "old,new,fragment",
        [
            pytest.param('title: "Example"', 'title: ""', "'title'", id="empty_title"),
            pytest.param("teaching: 10", "teaching: ten", "'teaching'", id="teaching_not_int"),
            pytest.param("exercises: 5", "exercises: -5", "'exercises'", id="negative_exercises"),
            pytest.param('keypoints:\n- "Learned."', "keypoints: []", "'keypoints'", id="empty_keypoints"),
            pytest.param('questions:\n- "Why?"', "", "'questions'", id="missing_questions"),
        ],
    )
    def test_invalid_fields(self, old, new, fragment):
        errors = _errors("", front_matter=FRONT_MATTER.replace(old, new))
        assert any(fragment in e.message for e in errors), [e.message for e in errors]

    def test_invalid_yaml(self):
        errors = _errors("", front_matter="---\ntitle: [unclosed\n---\n")
        assert "not valid YAML" in errors[0].message


class TestFences:

    def test_unclosed_fence(self):
        errors = _errors("~~~\nx = 1\n")
        assert any("never closed" in e.message for e in errors)

    def test_missing_attribute_line(self):
        errors = _errors("~~~\nx = 1\n~~~\n\nText.\n")
        assert any("not followed by" in e.message for e in errors)

    def test_unknown_fence_class(self):
        errors = _errors("~~~\nx = 1\n~~~\n{: .language-fortran}\n")
        assert any("Unknown code block class" in e.message for e in errors)

    def test_stray_fence_attribute(self):
        errors = _errors("Text.\n{: .output}\n")
        assert any("does not follow a code block" in e.message for e in errors)

    def test_python_syntax_error_reports_line(self):
        errors = _errors("~~~\nx = 1\ndef broken(:\n~~~\n{: .language-python}\n")
        assert len(errors) == 1
        assert errors[0].category == "python"
        # front matter is 11 lines, fence opens on line 12, bad line is 14
        assert errors[0].line == 14

    def test_magic_lines_keep_line_numbers(self):
        errors = _errors("~~~\n%timeit f()\n%timeit g()\ndef broken(:\n~~~\n{: .language-python}\n")
        assert len(errors) == 1
        # fence on line 12, two magics, bad line is 15
        assert errors[0].line == 15

    def test_indented_magic_keeps_block_valid(self):
        assert _errors("~~~\nfor i in range(3):\n    %time f(i)\n~~~\n{: .language-python}\n") == []

    def test_output_blocks_are_not_parsed(self):
        assert _errors("~~~\nTypeError: nope (\n~~~\n{: .error}\n") == []


class TestBlocks:

    def test_unclosed_block(self):
        errors = _errors("> ## Callout\n> Text.\n")
        assert any("never closed" in e.message for e in errors)

    def test_solution_outside_challenge(self):
        body = "> ## Note\n> > ## Solution\n> > Text.\n> {: .solution}\n{: .callout}\n"
        errors = _errors(body)
        assert any("expected .challenge" in e.message for e in errors)

    def test_top_level_solution(self):
        errors = _errors("> ## Solution\n> Text.\n{: .solution}\n")
        assert any("not inside a challenge" in e.message for e in errors)

    def test_close_without_open(self):
        errors = _errors("Text.\n{: .callout}\n")
        assert any("closes no open block" in e.message for e in errors)

    def test_unknown_block_class(self):
        errors = _errors("> ## Thing\n> Text.\n{: .sidebar}\n")
        assert any("Unknown block class" in e.message for e in errors)

    def test_inner_block_left_open(self):
        body = "> ## Challenge\n> > ## Solution\n> > Text.\n{: .challenge}\n"
        errors = _errors(body)
        assert any("'Solution' is never closed" in e.message for e in errors)


class TestStyle:

    def test_warnings(self):
        issues = check_lesson.validate_style("x.md", "Simply run it \u2014 obviously.\n")
        categories = sorted(i.category for i in issues if i.severity == "warning")
        assert categories == ["ascii", "voice", "voice"]

    @pytest.mark.parametrize(
        "text",
        [
            pytest.param("Adjust the kernel size.\n", id="adjust"),
            pytest.param("We can justify the cost.\n", id="justify"),
            pytest.param("An unjust comparison.\n", id="unjust"),
        ],
    )
    def test_phrases_match_whole_words(self, text):
        issues = check_lesson.validate_style("x.md", text)
        assert [i for i in issues if i.category == "voice"] == []

    def test_just_warns(self):
        issues = check_lesson.validate_style("x.md", "Then just run it.\n")
        assert [i.message for i in issues if i.category == "voice"] == ['Discouraged phrase: "just"']

    def test_word_count_info(self):
        issues = check_lesson.validate_style("x.md", "one two three\n")
        assert [i.message for i in issues if i.severity == "info"] == ["Lesson is 3 words"]


class TestCli:

    def _run(self, monkeypatch, *argv):
        monkeypatch.setattr(sys, "argv", ["check_lesson.py", *map(str, argv)])
        return check_lesson.main()

    def test_passing_lesson(self, monkeypatch, tmp_path):
        out = tmp_path / "lint.json"
        assert self._run(monkeypatch, REPO_ROOT / "episodes" / "cupy.md", "--json-out", out) == 0
        report = json.loads(out.read_text())
        assert report["lessons_checked"] == 1
        assert report["error_count"] == 0

    def test_failing_lesson(self, monkeypatch, tmp_path):
        bad = tmp_path / "bad.md"
        bad.write_text("no front matter\n", encoding="utf-8")
        assert self._run(monkeypatch, bad) == 1

    def test_strict_fails_on_warnings(self, monkeypatch, tmp_path):
        lesson = tmp_path / "warn.md"
        lesson.write_text(FRONT_MATTER + "Simply do it.\n", encoding="utf-8")
        assert self._run(monkeypatch, lesson) == 0
        assert self._run(monkeypatch, lesson, "--strict") == 1

    def test_missing_path(self, monkeypatch, tmp_path):
        with pytest.raises(SystemExit, match="not found"):
            self._run(monkeypatch, tmp_path / "nope.md")

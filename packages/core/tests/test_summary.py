"""Tests for change summaries."""

from prwatch_core.gh.pull_request import FileChange
from prwatch_core.summary import build_change_summary, diff_stats, summarize


def test_summarize_example():
    files = [
        FileChange("a.ts", "modified", 10, 2),
        FileChange("b.ts", "added", 50, 0),
    ]
    stats, summary = summarize(files)
    assert stats == "2 files, +60 -2"
    assert summary == "1 file(s) modified, 1 file(s) added. Most changed: b.ts (+50/-0), a.ts (+10/-2)"


def test_statuses_grouped_in_first_seen_order():
    files = [
        FileChange("x.py", "removed", 0, 9),
        FileChange("y.py", "modified", 1, 1),
        FileChange("z.py", "removed", 0, 1),
    ]
    assert build_change_summary(files).startswith("2 file(s) removed, 1 file(s) modified.")


def test_top_five_with_stable_ties():
    files = [FileChange(f"f{i}.py", "modified", 5, 0) for i in range(7)]
    files.append(FileChange("big.py", "modified", 100, 100))

    summary = build_change_summary(files)

    top = summary.split("Most changed: ")[1].split(", ")
    assert top == [
        "big.py (+100/-100)",
        "f0.py (+5/-0)",
        "f1.py (+5/-0)",
        "f2.py (+5/-0)",
        "f3.py (+5/-0)",
    ]


def test_empty_file_list():
    assert diff_stats([]) == "0 files, +0 -0"

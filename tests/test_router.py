"""Tests for the content router."""

import os
from pathlib import Path

import pytest

from docsync.exceptions import (
    ExtractionError,
    MoveCollisionError,
    MoveError,
    WalkError,
)
from docsync.extract import PdfToTextExtractor
from docsync.manifest import Manifest
from docsync.router import ContentRouter, Rule, ScanResult, merge, supported
from docsync.walker import ErrorPolicy

BASE_NS = 1_700_000_000_000_000_000


class FakeExtractor:
    """Extractor returning the file contents as a single page."""

    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    def extract(self, file_path):
        self.calls.append(file_path)
        if os.path.basename(file_path) in self.fail_on:
            raise ExtractionError("pdftotext exited with status 1")
        return [Path(file_path).read_text()]


def write_doc(path: Path, text: str, mod_time: int = BASE_NS) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    os.utime(path, ns=(mod_time, mod_time))
    return str(path)


@pytest.fixture
def src(tmp_path):
    directory = tmp_path / "src"
    directory.mkdir()
    return directory


@pytest.fixture
def dst(tmp_path):
    directory = tmp_path / "dst"
    directory.mkdir()
    return directory


class TestHelpers:
    """Tests for module-level helpers."""

    def test_supported(self):
        assert supported("statement.pdf")
        assert not supported("statement.txt")
        assert not supported("pdf")
        assert supported("notes.txt", extensions=(".txt",))

    def test_merge_keeps_lists_sorted(self):
        moves = {"x": ["/b"]}
        merge(moves, {"x": ["/a"], "y": ["/c"]})
        assert moves == {"x": ["/a", "/b"], "y": ["/c"]}

    def test_rule_requires_every_pattern(self):
        rule = Rule.of(["bank llc", r"#\d+"], "/dst")
        assert rule.matches("bank llc #123")
        assert not rule.matches("bank llc")

    def test_scan_result_raise_for_errors(self):
        error = MoveCollisionError("/a", "/b/a")
        result = ScanResult(moves={"/b": ["/a"]}, errors=[error])
        assert not result.ok
        assert result.total == 1
        with pytest.raises(MoveCollisionError):
            result.raise_for_errors()

    def test_root_policy_is_continue(self):
        assert ContentRouter.root_policy == ErrorPolicy.CONTINUE

    def test_abort_policy_raises_on_failing_root(self, tmp_path):
        router = ContentRouter(
            [tmp_path / "missing", tmp_path], [], extractor=FakeExtractor()
        )
        router.root_policy = ErrorPolicy.ABORT

        with pytest.raises(WalkError):
            router.scan(dry_run=True)


class TestContentRouterScan:
    """Tests for ContentRouter.scan."""

    def test_bank_statement_scenario(self, src, dst):
        """First dry run plans the move, the second one sees nothing new."""
        f1 = write_doc(src / "f1.pdf", "bank llc #123")
        router = ContentRouter(
            [src], [Rule.of(["bank llc"], dst)], extractor=FakeExtractor()
        )

        first = router.scan(dry_run=True)
        second = router.scan(dry_run=True)

        assert first.moves == {str(dst): [f1]}
        assert first.ok
        assert second.moves == {}
        assert os.path.exists(f1)

    def test_first_matching_rule_wins(self, src, tmp_path):
        """Rules are tried in order, not by specificity."""
        doc = write_doc(src / "doc.pdf", "A and B")
        rules = [
            Rule.of(["A"], tmp_path / "X"),
            Rule.of(["A", "B"], tmp_path / "Y"),
        ]
        router = ContentRouter([src], rules, extractor=FakeExtractor())

        result = router.scan(dry_run=True)

        assert result.moves == {str(tmp_path / "X"): [doc]}

    def test_all_patterns_must_match(self, src, tmp_path):
        doc = write_doc(src / "doc.pdf", "only A here")
        rules = [
            Rule.of(["A", "B"], tmp_path / "Y"),
            Rule.of(["only"], tmp_path / "Z"),
        ]
        router = ContentRouter([src], rules, extractor=FakeExtractor())

        assert router.scan(dry_run=True).moves == {str(tmp_path / "Z"): [doc]}

    def test_patterns_are_searched_not_full_matched(self, src, dst):
        doc = write_doc(src / "doc.pdf", "Invoice\nTotal: 42 EUR\n")
        router = ContentRouter(
            [src], [Rule.of([r"Total: \d+"], dst)], extractor=FakeExtractor()
        )
        assert router.scan(dry_run=True).moves == {str(dst): [doc]}

    def test_unsupported_files_ignored(self, src, dst):
        write_doc(src / "notes.txt", "bank llc")
        extractor = FakeExtractor()
        router = ContentRouter([src], [Rule.of(["bank"], dst)], extractor=extractor)

        assert router.scan(dry_run=True).moves == {}
        assert extractor.calls == []

    def test_unmatched_file_not_extracted_again(self, src, dst):
        write_doc(src / "other.pdf", "nothing interesting")
        extractor = FakeExtractor()
        router = ContentRouter([src], [Rule.of(["bank"], dst)], extractor=extractor)

        router.scan(dry_run=True)
        router.scan(dry_run=True)

        assert len(extractor.calls) == 1

    def test_touch_only_change_is_not_rerouted(self, src, dst):
        """A new modification time with identical content is reconciled by digest."""
        doc = write_doc(src / "doc.pdf", "bank llc")
        extractor = FakeExtractor()
        router = ContentRouter([src], [Rule.of(["bank"], dst)], extractor=extractor)
        router.scan(dry_run=True)

        write_doc(src / "doc.pdf", "bank llc", mod_time=BASE_NS + 5_000_000_000)

        assert router.scan(dry_run=True).moves == {}
        assert len(extractor.calls) == 1
        assert router.seen[doc].mod_time == BASE_NS + 5_000_000_000

    def test_touch_only_change_asymmetry_with_manifest(self, src, dst):
        """The manifest reports a touched file, the router does not."""
        doc = write_doc(src / "doc.pdf", "bank llc")
        manifest = Manifest()
        router = ContentRouter(
            [src], [Rule.of(["bank"], dst)], extractor=FakeExtractor()
        )
        manifest.update(src)
        router.scan(dry_run=True)

        write_doc(src / "doc.pdf", "bank llc", mod_time=BASE_NS + 1)

        assert manifest.update(src) == [doc]
        assert router.scan(dry_run=True).moves == {}

    def test_changed_content_is_matched_again(self, src, dst):
        doc = write_doc(src / "doc.pdf", "draft")
        extractor = FakeExtractor()
        router = ContentRouter([src], [Rule.of(["bank"], dst)], extractor=extractor)
        assert router.scan(dry_run=True).moves == {}

        write_doc(src / "doc.pdf", "bank llc final", mod_time=BASE_NS + 1)

        assert router.scan(dry_run=True).moves == {str(dst): [doc]}
        assert len(extractor.calls) == 2

    def test_extraction_failure_is_no_match(self, src, dst):
        """A broken document does not stop the scan."""
        write_doc(src / "broken.pdf", "bank llc")
        good = write_doc(src / "good.pdf", "bank llc")
        router = ContentRouter(
            [src],
            [Rule.of(["bank"], dst)],
            extractor=FakeExtractor(fail_on={"broken.pdf"}),
        )

        assert router.scan(dry_run=True).moves == {str(dst): [good]}

    def test_unstartable_extractor_is_no_match(self, tmp_path, src, dst):
        """An extractor binary that cannot run fails per file, not per root."""
        binary = tmp_path / "pdftotext"
        binary.write_text("#!/bin/sh\n")
        binary.chmod(0o644)
        write_doc(src / "a.pdf", "bank")
        write_doc(src / "b.pdf", "bank")
        router = ContentRouter(
            [src],
            [Rule.of(["bank"], dst)],
            extractor=PdfToTextExtractor(binary=str(binary)),
        )
        router.root_policy = ErrorPolicy.ABORT

        assert router.scan(dry_run=True).moves == {}
        assert set(router.seen) == {str(src / "a.pdf"), str(src / "b.pdf")}

    def test_failing_root_is_skipped(self, tmp_path, src, dst):
        """A root that cannot be listed does not prevent the other roots."""
        doc = write_doc(src / "doc.pdf", "bank")
        router = ContentRouter(
            [tmp_path / "missing", src],
            [Rule.of(["bank"], dst)],
            extractor=FakeExtractor(),
        )

        assert router.scan(dry_run=True).moves == {str(dst): [doc]}

    def test_digest_failure_skips_root(self, tmp_path, dst):
        """A read error while digesting abandons that root only."""
        root_a = tmp_path / "a"
        root_b = tmp_path / "b"
        write_doc(root_a / "x.pdf", "bank")
        doc_b = write_doc(root_b / "y.pdf", "bank")

        def digest_file(path):
            if path.endswith("x.pdf"):
                raise PermissionError(13, "Permission denied", path)
            return "digest-" + path

        router = ContentRouter(
            [root_a, root_b],
            [Rule.of(["bank"], dst)],
            extractor=FakeExtractor(),
            digest_file=digest_file,
        )

        assert router.scan(dry_run=True).moves == {str(dst): [doc_b]}

    def test_moves_grouped_and_sorted_across_roots(self, tmp_path):
        root_a = tmp_path / "a"
        root_b = tmp_path / "b"
        bank = tmp_path / "bank"
        tax = tmp_path / "tax"
        docs = [
            write_doc(root_b / "z.pdf", "bank"),
            write_doc(root_a / "sub" / "y.pdf", "bank"),
            write_doc(root_a / "x.pdf", "bank"),
            write_doc(root_b / "t.pdf", "tax form"),
        ]
        router = ContentRouter(
            [root_b, root_a],
            [Rule.of(["bank"], bank), Rule.of(["tax"], tax)],
            extractor=FakeExtractor(),
        )

        moves = router.scan(dry_run=True).moves

        assert moves == {
            str(bank): sorted(docs[:3]),
            str(tax): [docs[3]],
        }


class TestContentRouterMoves:
    """Tests for executing moves."""

    def test_moves_files(self, src, dst):
        doc = write_doc(src / "sub" / "f1.pdf", "bank llc #123")
        router = ContentRouter(
            [src], [Rule.of(["bank llc"], dst)], extractor=FakeExtractor()
        )

        result = router.scan(dry_run=False)

        assert result.ok
        assert not os.path.exists(doc)
        assert (dst / "f1.pdf").read_text() == "bank llc #123"

    def test_dry_run_does_not_move(self, src, dst):
        doc = write_doc(src / "f1.pdf", "bank")
        router = ContentRouter([src], [Rule.of(["bank"], dst)], extractor=FakeExtractor())

        router.scan(dry_run=True)

        assert os.path.exists(doc)
        assert list(dst.iterdir()) == []

    def test_collision_fails_only_that_move(self, src, dst):
        """An existing target declines that move; the others still happen."""
        a = write_doc(src / "a.pdf", "bank")
        b = write_doc(src / "b.pdf", "bank")
        (dst / "a.pdf").write_text("already here")
        router = ContentRouter([src], [Rule.of(["bank"], dst)], extractor=FakeExtractor())

        result = router.scan(dry_run=False)

        assert result.moves == {str(dst): [a, b]}
        assert len(result.errors) == 1
        error = result.errors[0]
        assert isinstance(error, MoveCollisionError)
        assert error.source == a
        assert error.target == str(dst / "a.pdf")
        assert "already exists" in str(error)
        assert os.path.exists(a)
        assert (dst / "a.pdf").read_text() == "already here"
        assert not os.path.exists(b)
        assert (dst / "b.pdf").exists()
        with pytest.raises(MoveCollisionError):
            result.raise_for_errors()

    def test_execute_reports_rename_failure(self, tmp_path, dst):
        router = ContentRouter([], [], extractor=FakeExtractor())

        errors = router.execute({str(dst): [str(tmp_path / "vanished.pdf")]})

        assert len(errors) == 1
        assert type(errors[0]) is MoveError

    def test_execute_attempts_every_move(self, tmp_path, src):
        first = tmp_path / "first"
        second = tmp_path / "second"
        first.mkdir()
        second.mkdir()
        a = write_doc(src / "a.pdf", "x")
        b = write_doc(src / "b.pdf", "x")
        (first / "a.pdf").write_text("taken")
        router = ContentRouter([], [], extractor=FakeExtractor())

        errors = router.execute({str(first): [a], str(second): [b]})

        assert [e.source for e in errors] == [a]
        assert (second / "b.pdf").exists()

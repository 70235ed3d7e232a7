import re
from datetime import datetime

import pytest

from signbook.processing import (
    BookMarker,
    DocumentProcessor,
    DocumentRecord,
    DocumentStatus,
    EncodingLineReader,
    FileLifecycleManager,
    FixedMarker,
    InMemoryDocumentRepository,
    MatchMode,
    StoragePaths,
    build_strategy,
)

TIMESTAMPED = re.compile(r"^\d{17}_book\.txt$")


def _storage(tmp_path):
    lifecycle = FileLifecycleManager(
        StoragePaths(
            input_dir=tmp_path / "input",
            output_dir=tmp_path / "output",
            processed_dir=tmp_path / "processed",
            error_dir=tmp_path / "error",
        )
    )
    lifecycle.ensure_dirs()
    return lifecycle


def _processor(repo, lifecycle, strategy=None, reader=None, **kwargs):
    reader = reader or EncodingLineReader("ISO-8859-1")
    return DocumentProcessor(
        repository=repo,
        lifecycle=lifecycle,
        reader=reader,
        strategy=strategy or FixedMarker("1"),
        **kwargs,
    )


def _queue(repo, lifecycle, lines, filename="book.txt", **kwargs):
    path = lifecycle.paths.input_dir / filename
    path.write_text("\n".join(lines) + "\n", encoding="iso-8859-1")
    document = DocumentRecord(id="doc-1", filename=filename, **kwargs)
    repo.save_document(document)
    assert repo.claim_document(document.id)
    return repo.get_document(document.id)


class FailingReader(EncodingLineReader):
    """Yields the first `fail_after` lines of a file, then raises an I/O error."""

    def __init__(self, fail_after, encoding="ISO-8859-1"):
        super().__init__(encoding)
        self.fail_after = fail_after

    def read_lines(self, path):
        for index, line in enumerate(super().read_lines(path)):
            if index == self.fail_after:
                raise OSError("device not ready")
            yield line


class FailingSuccessActivityRepository(InMemoryDocumentRepository):
    """Records every status written and rejects the activity entry of a successful split."""

    def __init__(self):
        super().__init__()
        self.statuses = []

    def update_document(self, document_id, status=None, page_break=None, occurrence_publication=None):
        if status is not None:
            self.statuses.append(DocumentStatus(status))
        super().update_document(document_id, status, page_break, occurrence_publication)

    def append_activity(self, document_id, entry):
        if entry.status == DocumentStatus.FINISHED_OK.value:
            raise RuntimeError("activity log unavailable")
        super().append_activity(document_id, entry)


class FailingFinishRepository(InMemoryDocumentRepository):
    def update_document(self, document_id, status=None, page_break=None, occurrence_publication=None):
        if status == DocumentStatus.FINISHED_OK:
            raise RuntimeError("store unavailable")
        super().update_document(document_id, status, page_break, occurrence_publication)


def test_document_is_split_stored_and_relocated(tmp_path):
    repo = InMemoryDocumentRepository()
    lifecycle = _storage(tmp_path)
    document = _queue(repo, lifecycle, ["HEADER", "a", "1", "b", "c", "1", "d"])

    before = datetime.utcnow()
    result = _processor(repo, lifecycle).process(document)
    after = datetime.utcnow()

    assert result.success
    assert result.page_count == 3
    pages = repo.list_pages("doc-1")
    assert [p.number for p in pages] == [0, 1, 2]
    assert [p.lines for p in pages] == [["a"], ["b", "c"], ["d"]]

    stored = repo.get_document("doc-1")
    assert stored.status == DocumentStatus.FINISHED_OK
    assert stored.occurrence_publication == 3 == len(pages)
    assert len(stored.activity) == 1
    entry = stored.activity[0]
    assert entry.action == "split"
    assert entry.status == DocumentStatus.FINISHED_OK.value
    assert entry.occurrences == 3
    assert entry.error_description == ""
    assert document.created_at <= before <= entry.start_time <= entry.end_time <= after
    assert entry.end_time <= stored.updated_at

    assert list(lifecycle.paths.input_dir.iterdir()) == []
    processed = list(lifecycle.paths.processed_dir.iterdir())
    assert len(processed) == 1 and TIMESTAMPED.match(processed[0].name)
    outputs = list(lifecycle.paths.output_dir.iterdir())
    assert [p.name for p in outputs] == [processed[0].name]
    assert outputs[0].read_text(encoding="utf-8") == "HEADER\na\n1\n1\nb\nc\n1\n1\nd\n"


def test_small_batches_store_every_page(tmp_path):
    repo = InMemoryDocumentRepository()
    lifecycle = _storage(tmp_path)
    document = _queue(repo, lifecycle, ["H", "a", "1", "b", "1", "c", "1", "d", "1", "e"])

    result = _processor(repo, lifecycle, batch_size=2).process(document)

    assert result.page_count == 5
    assert [p.number for p in repo.list_pages("doc-1")] == [0, 1, 2, 3, 4]


def test_mid_split_failure_cleans_up_and_marks_error(tmp_path):
    repo = InMemoryDocumentRepository()
    lifecycle = _storage(tmp_path)
    document = _queue(repo, lifecycle, ["HEADER", "a", "1", "b", "1", "c"])
    # The second marker is never read; page 0 was flushed before the failure.
    processor = _processor(repo, lifecycle, reader=FailingReader(fail_after=4), batch_size=1)

    result = processor.process(document)

    assert not result.success
    assert result.error == "device not ready"
    stored = repo.get_document("doc-1")
    assert stored.status == DocumentStatus.ERROR
    assert [p.number for p in repo.list_pages("doc-1")] == [0]
    assert list(lifecycle.paths.output_dir.iterdir()) == []
    assert list(lifecycle.paths.input_dir.iterdir()) == []
    errored = list(lifecycle.paths.error_dir.iterdir())
    assert len(errored) == 1 and TIMESTAMPED.match(errored[0].name)
    assert stored.activity[-1].status == DocumentStatus.ERROR.value
    assert stored.activity[-1].error_description == "device not ready"


def test_unflushed_pages_are_dropped_on_failure(tmp_path):
    repo = InMemoryDocumentRepository()
    lifecycle = _storage(tmp_path)
    document = _queue(repo, lifecycle, ["HEADER", "a", "1", "b", "1", "c"])
    processor = _processor(repo, lifecycle, reader=FailingReader(fail_after=5), batch_size=10)

    processor.process(document)

    assert repo.list_pages("doc-1") == []
    assert repo.get_document("doc-1").status == DocumentStatus.ERROR


def test_detected_marker_is_persisted_on_document(tmp_path):
    repo = InMemoryDocumentRepository()
    repo.save_marker(BookMarker("book-a", "@@"))
    repo.save_marker(BookMarker("book-b", "<<PB>>"))
    lifecycle = _storage(tmp_path)
    document = _queue(repo, lifecycle, ["HEADER", "<<PB>>", "a", "<<PB>>", "b"])
    reader = EncodingLineReader("ISO-8859-1")
    strategy = build_strategy("auto", repo, reader)

    result = _processor(repo, lifecycle, strategy=strategy, reader=reader).process(document)

    assert result.page_count == 2
    assert [p.lines for p in repo.list_pages("doc-1")] == [["a"], ["b"]]
    assert repo.get_document("doc-1").page_break == "<<PB>>"


def test_stored_marker_is_used_as_is(tmp_path):
    repo = InMemoryDocumentRepository()
    lifecycle = _storage(tmp_path)
    document = _queue(repo, lifecycle, ["HEADER", "x", "##", "y"], page_break="##")
    reader = EncodingLineReader("ISO-8859-1")

    result = _processor(repo, lifecycle, strategy=build_strategy("auto", repo, reader), reader=reader).process(document)

    assert result.page_count == 2
    assert repo.get_document("doc-1").page_break == "##"


def test_missing_marker_marks_error(tmp_path):
    repo = InMemoryDocumentRepository()
    lifecycle = _storage(tmp_path)
    document = _queue(repo, lifecycle, ["HEADER", "a", "b"])
    reader = EncodingLineReader("ISO-8859-1")

    result = _processor(repo, lifecycle, strategy=build_strategy("catalog", repo, reader), reader=reader).process(
        document
    )

    assert result.status == DocumentStatus.ERROR
    assert "marker" in result.error
    assert repo.list_pages("doc-1") == []
    assert len(list(lifecycle.paths.error_dir.iterdir())) == 1


def test_missing_source_file_marks_error(tmp_path):
    repo = InMemoryDocumentRepository()
    lifecycle = _storage(tmp_path)
    repo.save_document(DocumentRecord(id="doc-1", filename="ghost.txt"))
    repo.claim_document("doc-1")

    result = _processor(repo, lifecycle).process(repo.get_document("doc-1"))

    assert result.status == DocumentStatus.ERROR
    assert "not found" in result.error
    stored = repo.get_document("doc-1")
    assert stored.status == DocumentStatus.ERROR
    assert stored.activity[-1].error_description


def test_file_not_matching_pattern_goes_to_error(tmp_path):
    repo = InMemoryDocumentRepository()
    lifecycle = _storage(tmp_path)
    document = _queue(repo, lifecycle, ["HEADER", "a"], filename="book.txt")

    result = _processor(repo, lifecycle, input_pattern=r".*\.sgn").process(document)

    assert result.status == DocumentStatus.ERROR
    assert len(list(lifecycle.paths.error_dir.iterdir())) == 1


def test_store_failure_after_relocation_reverts_to_error(tmp_path):
    repo = FailingFinishRepository()
    lifecycle = _storage(tmp_path)
    document = _queue(repo, lifecycle, ["HEADER", "a", "1", "b"])

    result = _processor(repo, lifecycle).process(document)

    assert result.status == DocumentStatus.ERROR
    assert repo.get_document("doc-1").status == DocumentStatus.ERROR
    assert list(lifecycle.paths.processed_dir.iterdir()) == []
    assert list(lifecycle.paths.output_dir.iterdir()) == []
    assert len(list(lifecycle.paths.error_dir.iterdir())) == 1


def test_batch_size_must_be_positive(tmp_path):
    with pytest.raises(ValueError):
        _processor(InMemoryDocumentRepository(), _storage(tmp_path), batch_size=0)


def test_output_keeps_header_and_flags_marker_lines_by_substring(tmp_path):
    repo = InMemoryDocumentRepository()
    lifecycle = _storage(tmp_path)
    document = _queue(repo, lifecycle, ["Título", "-- PB 1 --", "a", "-- PB 2 --", "b"])
    processor = _processor(repo, lifecycle, strategy=FixedMarker("PB"), match=MatchMode.CONTAINS, page_separator="#")

    result = processor.process(document)

    assert result.page_count == 2
    assert [p.lines for p in repo.list_pages("doc-1")] == [["a"], ["b"]]
    (output,) = lifecycle.paths.output_dir.iterdir()
    assert output.read_text(encoding="utf-8") == "Título\n#\n-- PB 1 --\na\n#\n-- PB 2 --\nb\n"


def test_filename_outside_input_directory_is_rejected(tmp_path):
    repo = InMemoryDocumentRepository()
    lifecycle = _storage(tmp_path)
    secret = tmp_path / "secret.txt"
    secret.write_text("HEADER\na\n1\nb\n", encoding="iso-8859-1")
    repo.save_document(DocumentRecord(id="doc-1", filename="../secret.txt"))
    repo.claim_document("doc-1")

    result = _processor(repo, lifecycle).process(repo.get_document("doc-1"))

    assert result.status == DocumentStatus.ERROR
    assert "outside the input directory" in result.error
    assert secret.read_text(encoding="iso-8859-1") == "HEADER\na\n1\nb\n"
    assert repo.list_pages("doc-1") == []
    assert repo.get_document("doc-1").status == DocumentStatus.ERROR
    for directory in (lifecycle.paths.processed_dir, lifecycle.paths.error_dir, lifecycle.paths.output_dir):
        assert list(directory.iterdir()) == []


def test_failed_success_activity_never_leaves_finished_ok_behind(tmp_path):
    repo = FailingSuccessActivityRepository()
    lifecycle = _storage(tmp_path)
    document = _queue(repo, lifecycle, ["HEADER", "a", "1", "b"])

    result = _processor(repo, lifecycle).process(document)

    assert result.status == DocumentStatus.ERROR
    assert DocumentStatus.FINISHED_OK not in repo.statuses
    assert repo.statuses[-1] == DocumentStatus.ERROR
    stored = repo.get_document("doc-1")
    assert stored.status == DocumentStatus.ERROR
    assert [entry.status for entry in stored.activity] == [DocumentStatus.ERROR.value]
    assert stored.activity[-1].error_description == "activity log unavailable"


def test_empty_stored_marker_is_replaced_by_detected_one(tmp_path):
    repo = InMemoryDocumentRepository()
    repo.save_marker(BookMarker("book-a", "<<PB>>"))
    lifecycle = _storage(tmp_path)
    document = _queue(repo, lifecycle, ["HEADER", "a", "<<PB>>", "b"], page_break="")
    reader = EncodingLineReader("ISO-8859-1")

    result = _processor(repo, lifecycle, strategy=build_strategy("auto", repo, reader), reader=reader).process(document)

    assert result.page_count == 2
    assert repo.get_document("doc-1").page_break == "<<PB>>"

"""Tests for the scan, detection and triage controllers."""

import threading

import pytest

from photo_triage.core.detector import DuplicateDetector
from photo_triage.core.errors import AuthorizationInsufficient, ConcurrentOperationRejected
from photo_triage.core.index import AssetId, Fingerprint, FingerprintStore
from photo_triage.core.scanner import PhotoScanner
from photo_triage.core.triage import Decision
from photo_triage.core.workflow import (
    DetectionController,
    DetectionStatus,
    ScanController,
    ScanStatus,
    SingleFlight,
    TriageWorkspace,
    can_scan,
    ensure_authorized,
)
from photo_triage.platforms.base import AuthorizationState

from fakes import FakeDeleter, FakeRepository, record


def fp(identifier, created=1000.0, value=7):
    return Fingerprint(AssetId(identifier), created, 1000, 1000, value)


def save_index(store, fingerprints):
    store.save(store.new_index(list(fingerprints)))


class TestAuthorization:
    @pytest.mark.parametrize(
        "state,allowed",
        [
            (AuthorizationState.AUTHORIZED, True),
            (AuthorizationState.LIMITED, True),
            (AuthorizationState.DENIED, False),
            (AuthorizationState.RESTRICTED, False),
            (AuthorizationState.UNDETERMINED, False),
        ],
    )
    def test_can_scan(self, state, allowed):
        assert can_scan(state) is allowed

    def test_ensure_authorized(self):
        ensure_authorized(AuthorizationState.LIMITED)

        with pytest.raises(AuthorizationInsufficient) as excinfo:
            ensure_authorized(AuthorizationState.RESTRICTED)

        assert excinfo.value.state == "restricted"


class TestSingleFlight:
    def test_second_claim_is_rejected(self):
        flight = SingleFlight("scan")

        with flight.claim():
            assert flight.busy
            with pytest.raises(ConcurrentOperationRejected):
                with flight.claim():
                    pass

        assert not flight.busy

    def test_guard_released_after_error(self):
        flight = SingleFlight("scan")

        with pytest.raises(RuntimeError):
            with flight.claim():
                raise RuntimeError("boom")

        with flight.claim():
            pass


class TestScanController:
    @pytest.fixture
    def repo(self):
        return FakeRepository([record("a", 10.0), record("b", 20.0)])

    def test_unauthorized_scan_never_touches_the_library(self, repo, store):
        controller = ScanController(PhotoScanner(repo, store))

        outcome = controller.start_scan(AuthorizationState.DENIED)

        assert outcome.status is ScanStatus.UNAUTHORIZED
        assert outcome.message == "Photo access not authorized."
        assert repo.requested == []
        assert not store.exists()

    def test_completed_scan(self, repo, store):
        controller = ScanController(PhotoScanner(repo, store))

        outcome = controller.start_scan(AuthorizationState.LIMITED)

        assert outcome.status is ScanStatus.COMPLETED
        assert outcome.message == "Indexed 2 / 2 assets"
        assert len(store.load().fingerprints) == 2

    def test_cancelled_scan(self, repo, store):
        cancel = threading.Event()
        cancel.set()

        outcome = ScanController(PhotoScanner(repo, store)).start_scan(
            AuthorizationState.AUTHORIZED, cancel_event=cancel
        )

        assert outcome.status is ScanStatus.CANCELLED
        assert outcome.result.cancelled

    def test_overlapping_scan_is_rejected(self, repo, store):
        controller = ScanController(PhotoScanner(repo, store))
        nested = []

        def start_again(identifier):
            if not nested:
                nested.append(controller.start_scan(AuthorizationState.AUTHORIZED))

        repo.on_request = start_again
        outcome = controller.start_scan(AuthorizationState.AUTHORIZED)

        assert outcome.status is ScanStatus.COMPLETED
        assert nested[0].status is ScanStatus.BUSY
        assert nested[0].message == "A scan is already running."
        assert not controller.is_scanning

    def test_scans_are_exclusive_across_controllers(self, repo, store):
        first = ScanController(PhotoScanner(repo, store))
        second = ScanController(PhotoScanner(FakeRepository([record("z")]), store))
        nested = []

        def start_other(identifier):
            if not nested:
                nested.append(second.start_scan(AuthorizationState.AUTHORIZED))
                nested.append(second.is_scanning)

        repo.on_request = start_other
        outcome = first.start_scan(AuthorizationState.AUTHORIZED)

        assert outcome.status is ScanStatus.COMPLETED
        assert nested[0].status is ScanStatus.BUSY
        assert nested[1] is True
        assert [fp.local_identifier for fp in store.load().fingerprints] == ["a", "b"]

    def test_injected_guard_is_independent(self, repo, store):
        first = ScanController(PhotoScanner(repo, store))
        second = ScanController(
            PhotoScanner(FakeRepository([record("z")]), store), flight=SingleFlight("scan")
        )
        nested = []

        def start_other(identifier):
            if not nested:
                nested.append(second.start_scan(AuthorizationState.AUTHORIZED))

        repo.on_request = start_other
        first.start_scan(AuthorizationState.AUTHORIZED)

        assert nested[0].status is ScanStatus.COMPLETED


    def test_storage_failure_is_reported(self, repo, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = FingerprintStore(blocker / "index.json")

        outcome = ScanController(PhotoScanner(repo, store)).start_scan(
            AuthorizationState.AUTHORIZED
        )

        assert outcome.status is ScanStatus.FAILED


class TestDetectionController:
    def test_missing_index(self, store):
        report = DetectionController(store).load_duplicates()

        assert report.status is DetectionStatus.NO_INDEX
        assert report.message == "No fingerprint index found. Run a scan first."
        assert report.groups == []

    def test_outdated_index(self, tmp_path):
        path = tmp_path / "index.json"
        save_index(FingerprintStore(path, format_version=0), [fp("a")])

        report = DetectionController(FingerprintStore(path)).load_duplicates()

        assert report.status is DetectionStatus.STALE_INDEX
        assert report.message == "Fingerprint index is outdated. Run a new scan."

    def test_corrupt_index(self, store):
        store.path.parent.mkdir(parents=True, exist_ok=True)
        store.path.write_text("{ not json")

        report = DetectionController(store).load_duplicates()

        assert report.status is DetectionStatus.CORRUPT_INDEX
        assert report.message == "Fingerprint index is unreadable. Run a new scan."

    def test_no_duplicates(self, store):
        save_index(store, [fp("a", value=1), fp("b", value=2)])

        report = DetectionController(store).load_duplicates()

        assert report.status is DetectionStatus.OK
        assert report.message == "No exact duplicates detected."
        assert report.total_estimated_bytes == 0

    def test_groups_are_estimated(self, store):
        save_index(store, [fp("a", 1000.0), fp("b", 1030.0), fp("c", 1060.0)])
        repo = FakeRepository([], sizes={"c": 1_000_000})

        report = DetectionController(store, repository=repo).load_duplicates()

        assert report.status is DetectionStatus.OK
        assert report.message == "Found 1 duplicate groups."
        assert report.groups[0].representative.local_identifier == "a"
        assert report.total_estimated_bytes == 250000 + 1_000_000
        assert report.estimated_bytes_for("c") == 1_000_000
        assert report.estimated_bytes_for("a") is None

    def test_window_comes_from_detector(self, store):
        save_index(store, [fp("a", 0.0), fp("b", 100.0)])

        report = DetectionController(
            store, detector=DuplicateDetector(creation_window=10)
        ).load_duplicates()

        assert report.groups == []

    def test_detection_is_exclusive_across_controllers(self, store):
        save_index(store, [fp("a", 1000.0), fp("b", 1030.0)])
        other = DetectionController(store)
        nested = []

        class NestingRepository(FakeRepository):
            def resource_size(self, identifier):
                nested.append(other.load_duplicates())
                return None

        report = DetectionController(store, repository=NestingRepository([])).load_duplicates()

        assert report.status is DetectionStatus.OK
        assert nested[0].status is DetectionStatus.BUSY
        assert nested[0].message == "Detection is already running."


    def test_index_version_is_exposed(self, store):
        assert DetectionController(store).supported_index_version == store.format_version


class TestDuplicateDeletion:
    def test_requires_a_deleter(self, store):
        with pytest.raises(ValueError):
            DetectionController(store).delete_assets([AssetId("a")])

    def test_delete_reruns_detection(self, store):
        save_index(store, [fp("a", 1000.0), fp("b", 1030.0)])
        deleter = FakeDeleter()
        controller = DetectionController(store, deleter=deleter)

        outcome = controller.delete_assets([AssetId("b"), AssetId("b")])

        assert outcome.result.success
        assert deleter.calls == [["b"]]
        assert outcome.message == (
            "Requested deletion for 1 assets.\nFound 1 duplicate groups."
        )
        assert outcome.report.status is DetectionStatus.OK

    def test_failed_delete(self, store):
        controller = DetectionController(store, deleter=FakeDeleter(fail_with="denied"))

        outcome = controller.delete_assets([AssetId("b")])

        assert not outcome.result.success
        assert outcome.message == "Deletion failed: denied"
        assert outcome.report is None

    def test_raising_deleter_is_reported(self, store):
        class UnavailableDeleter(FakeDeleter):
            def delete_assets(self, identifiers):
                raise OSError("photo library unavailable")

        controller = DetectionController(store, deleter=UnavailableDeleter())

        outcome = controller.delete_assets([AssetId("x")])

        assert not outcome.result.success
        assert outcome.result.reason == "photo library unavailable"
        assert outcome.message == "Deletion failed: photo library unavailable"
        assert outcome.report is None


    def test_empty_selection(self, store):
        deleter = FakeDeleter()

        outcome = DetectionController(store, deleter=deleter).delete_assets([])

        assert outcome.result.success
        assert deleter.calls == []


class TestTriageWorkspace:
    @pytest.fixture
    def workspace(self):
        # 2024-03-10 and 2024-03-20, 2024-01-05 UTC noon; one undated asset.
        repo = FakeRepository(
            [
                record("jan", 1704456000.0),
                record("mar1", 1710072000.0),
                record("mar2", 1710936000.0),
                record("undated", None),
            ]
        )
        workspace = TriageWorkspace(repo)
        workspace.load_months()
        return workspace

    def test_months_are_summarised(self, workspace):
        summaries = workspace.months()

        assert [s.id for s in summaries] == ["2024-03", "2024-01", "unknown"]
        assert summaries[0].total_count == 2
        assert all(s.pending_deletion_count == 0 for s in summaries)

    def test_sessions_are_cached_and_started(self, workspace):
        session = workspace.session("2024-03")

        assert session is workspace.session("2024-03")
        assert session.current_asset.id == "mar2"

        session.decide(Decision.DELETE)
        assert workspace.months()[0].pending_deletion_count == 1

    def test_unknown_month(self, workspace):
        assert workspace.month("1999-01") is None
        assert workspace.session("1999-01") is None

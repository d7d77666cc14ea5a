import pytest

from gh_backup.errors import RepositoryBackupError, TransferError
from gh_backup.models import AuthenticatedUser, BackupUnit, Credentials, RemoteRepository, UnitState
from gh_backup.orchestrator import BackupOrchestrator

from fakes import FakeTransfer, repo_payload

IDENTITY = AuthenticatedUser(login="octocat")
TOKEN = "ghp_secret"


def repos(*names):
    return [RemoteRepository.from_payload(repo_payload(name)) for name in names]


class TestCloneOrFetch:
    def test_missing_target_is_cloned(self, tmp_path):
        transfer = FakeTransfer()

        report = BackupOrchestrator(transfer).run(repos("foo"), IDENTITY, TOKEN, tmp_path)

        assert transfer.clones == [("https://github.com/acme/foo.git", tmp_path / "foo")]
        assert transfer.fetches == []
        outcome = report.outcomes["foo"]
        assert outcome.state is UnitState.SUCCEEDED
        assert outcome.action == "clone"
        assert report.success

    def test_existing_target_is_fetched_via_origin(self, tmp_path):
        (tmp_path / "foo").mkdir()
        transfer = FakeTransfer(remotes=["origin"])

        report = BackupOrchestrator(transfer).run(repos("foo"), IDENTITY, TOKEN, tmp_path)

        assert transfer.clones == []
        assert transfer.fetches == [(tmp_path / "foo", "origin")]
        assert report.outcomes["foo"].action == "fetch"
        assert report.success

    def test_second_run_fetches_instead_of_cloning(self, tmp_path):
        transfer = FakeTransfer()
        orchestrator = BackupOrchestrator(transfer)

        orchestrator.run(repos("a", "b"), IDENTITY, TOKEN, tmp_path)
        report = orchestrator.run(repos("a", "b"), IDENTITY, TOKEN, tmp_path)

        assert len(transfer.clones) == 2
        assert sorted(path.name for path, _ in transfer.fetches) == ["a", "b"]
        assert {outcome.action for outcome in report.outcomes.values()} == {"fetch"}

    def test_every_remote_is_fetched(self, tmp_path):
        (tmp_path / "foo").mkdir()
        transfer = FakeTransfer(remotes=["origin", "upstream"])

        BackupOrchestrator(transfer).run(repos("foo"), IDENTITY, TOKEN, tmp_path)

        assert [remote for _, remote in transfer.fetches] == ["origin", "upstream"]

    def test_failing_remote_does_not_skip_the_others(self, tmp_path):
        (tmp_path / "foo").mkdir()
        transfer = FakeTransfer(remotes=["origin", "upstream"], fail_remotes={"origin"})

        report = BackupOrchestrator(transfer).run(repos("foo"), IDENTITY, TOKEN, tmp_path)

        assert [remote for _, remote in transfer.fetches] == ["origin", "upstream"]
        outcome = report.outcomes["foo"]
        assert outcome.state is UnitState.FAILED
        assert outcome.error is TransferError.NETWORK

    def test_repository_without_remotes_succeeds(self, tmp_path):
        (tmp_path / "foo").mkdir()
        transfer = FakeTransfer(remotes=[])

        report = BackupOrchestrator(transfer).run(repos("foo"), IDENTITY, TOKEN, tmp_path)

        assert report.success
        assert transfer.fetches == []

    def test_credentials_use_login_and_token(self, tmp_path):
        transfer = FakeTransfer()

        BackupOrchestrator(transfer).run(repos("a", "b"), IDENTITY, TOKEN, tmp_path)

        assert set(transfer.credentials) == {Credentials(username="octocat", token=TOKEN)}

    def test_empty_listing(self, tmp_path):
        report = BackupOrchestrator(FakeTransfer()).run([], IDENTITY, TOKEN, tmp_path)

        assert report.outcomes == {}
        assert report.success


class TestFailureIsolation:
    def test_one_failure_does_not_affect_siblings(self, tmp_path):
        names = [f"repo{i}" for i in range(12)]
        transfer = FakeTransfer(fail_clone={"repo5": TransferError.AUTHENTICATION})

        report = BackupOrchestrator(transfer, workers=3).run(repos(*names), IDENTITY, TOKEN, tmp_path)

        assert len(report.outcomes) == 12
        assert [outcome.repository for outcome in report.failures] == ["repo5"]
        assert report.failures[0].error is TransferError.AUTHENTICATION
        assert not report.success
        succeeded = [o for o in report.outcomes.values() if o.state is UnitState.SUCCEEDED]
        assert len(succeeded) == 11

    def test_local_filesystem_errors_are_classified(self, tmp_path):
        class BrokenOpen(FakeTransfer):
            def open(self, path):
                raise RepositoryBackupError(TransferError.LOCAL_FILESYSTEM, "not a git repository")

        (tmp_path / "foo").mkdir()

        report = BackupOrchestrator(BrokenOpen()).run(repos("foo", "bar"), IDENTITY, TOKEN, tmp_path)

        assert report.outcomes["foo"].error is TransferError.LOCAL_FILESYSTEM
        assert report.outcomes["bar"].state is UnitState.SUCCEEDED

    def test_unexpected_exception_becomes_unknown(self, tmp_path):
        class Exploding(FakeTransfer):
            def clone(self, url, destination, credentials):
                raise RuntimeError("kaboom")

        report = BackupOrchestrator(Exploding()).run(repos("foo"), IDENTITY, TOKEN, tmp_path)

        outcome = report.outcomes["foo"]
        assert outcome.state is UnitState.FAILED
        assert outcome.error is TransferError.UNKNOWN
        assert "kaboom" in outcome.message
        assert report.errors() == ["Repository foo clone failed (unknown): kaboom"]


class TestConcurrency:
    @pytest.mark.parametrize("workers, count", [(1, 5), (3, 20), (10, 40)])
    def test_active_transfers_never_exceed_pool_width(self, tmp_path, workers, count):
        transfer = FakeTransfer(delay=0.01)
        names = [f"r{i}" for i in range(count)]

        report = BackupOrchestrator(transfer, workers=workers).run(repos(*names), IDENTITY, TOKEN, tmp_path)

        assert len(report.outcomes) == count
        assert 1 <= transfer.max_active <= workers

    def test_rejects_empty_pool(self):
        with pytest.raises(ValueError):
            BackupOrchestrator(FakeTransfer(), workers=0)


class TestDryRun:
    def test_no_transfer_is_performed(self, tmp_path):
        (tmp_path / "existing").mkdir()
        transfer = FakeTransfer()

        report = BackupOrchestrator(transfer, dry_run=True).run(
            repos("existing", "new"), IDENTITY, TOKEN, tmp_path
        )

        assert transfer.clones == []
        assert transfer.fetches == []
        assert not (tmp_path / "new").exists()
        assert report.outcomes["existing"].action == "fetch"
        assert report.outcomes["new"].action == "clone"
        assert {o.state for o in report.outcomes.values()} == {UnitState.SKIPPED}
        assert report.success


class TestBackupUnit:
    def _unit(self, tmp_path):
        repo = repos("foo")[0]
        return BackupUnit(repository=repo, target_path=tmp_path / "foo", credentials=Credentials("u", "t"))

    def test_follows_lifecycle(self, tmp_path):
        unit = self._unit(tmp_path)
        for state in (UnitState.DISPATCHED, UnitState.CLONING, UnitState.SUCCEEDED):
            unit.transition(state)
        assert unit.state.terminal

    def test_terminal_states_are_final(self, tmp_path):
        unit = self._unit(tmp_path)
        unit.transition(UnitState.DISPATCHED)
        unit.transition(UnitState.FETCHING)
        unit.transition(UnitState.FAILED)

        with pytest.raises(ValueError):
            unit.transition(UnitState.SUCCEEDED)

    def test_cannot_skip_dispatch(self, tmp_path):
        with pytest.raises(ValueError):
            self._unit(tmp_path).transition(UnitState.CLONING)

    def test_credentials_repr_hides_token(self):
        assert "secret" not in repr(Credentials(username="octocat", token="secret"))

# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.12
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/test_manager.py

import pytest

from lsm.core.manager import SubmoduleManager, derive_status
from lsm.data.models import (
    AddOptions,
    ListOptions,
    RemoveOptions,
    SubmoduleStatus,
    UpdateOptions,
)
from lsm.system.exceptions import (
    AlreadyExistsError,
    CommandError,
    ConfigError,
    InvalidPathError,
    InvalidUrlError,
    NotFoundError,
    UncommittedChangesError,
    ValidationError,
)
from tests.conftest import GITMODULES_LIST, STATUS, STATUS_RECURSIVE, gitmodules_listing


URL = "https://github.com/org/lib.git"
SHA_A = "1" * 40
SHA_B = "2" * 40
SHA_C = "3" * 40
SHA_D = "4" * 40

LIB_TRACKED = gitmodules_listing(("vendor/lib", "vendor/lib", URL))


def stages(events):
    return [(e.stage, e.kind) for e in events]


def make_initialized(repo, path):
    checkout = repo / path
    checkout.mkdir(parents=True, exist_ok=True)
    (checkout / ".git").write_text(f"gitdir: ../.git/modules/{path}\n")


class TestDeriveStatus:

    @pytest.mark.parametrize("flag,dirty,ahead,behind,expected", [
        (SubmoduleStatus.NOT_INITIALIZED, True, 3, 3, SubmoduleStatus.NOT_INITIALIZED),
        (SubmoduleStatus.MERGE_CONFLICT, False, 1, 0, SubmoduleStatus.MERGE_CONFLICT),
        (SubmoduleStatus.MODIFIED, False, 0, 0, SubmoduleStatus.MODIFIED),
        (SubmoduleStatus.UP_TO_DATE, True, 2, 0, SubmoduleStatus.MODIFIED),
        (SubmoduleStatus.UP_TO_DATE, False, 2, 0, SubmoduleStatus.AHEAD),
        (SubmoduleStatus.UP_TO_DATE, False, 0, 2, SubmoduleStatus.BEHIND),
        (SubmoduleStatus.UP_TO_DATE, False, 1, 1, SubmoduleStatus.DIVERGED),
        (SubmoduleStatus.UP_TO_DATE, False, 0, 0, SubmoduleStatus.UP_TO_DATE),
    ])
    def test_state_machine(self, flag, dirty, ahead, behind, expected):
        assert derive_status(flag, dirty, ahead, behind) is expected


class TestList:

    LISTING = "\n".join([
        f" {SHA_A} lib (heads/main)",
        f"-{SHA_B} other",
        f"+{SHA_C} mod (v1.0-2-gabcdef0)",
        f"U{SHA_D} conflict",
    ])

    def test_list_parses_flags(self, manager, fake_git):
        fake_git.script(STATUS, self.LISTING)

        records = manager.list()

        assert [(r.path, r.status) for r in records] == [
            ("lib", SubmoduleStatus.UP_TO_DATE),
            ("other", SubmoduleStatus.NOT_INITIALIZED),
            ("mod", SubmoduleStatus.MODIFIED),
            ("conflict", SubmoduleStatus.MERGE_CONFLICT),
        ]
        assert records[0].commit == "1111111"
        assert records[0].full_commit == SHA_A
        assert records[0].branch == "heads/main"
        assert records[1].branch is None

    def test_plain_list_makes_one_call(self, manager, fake_git):
        fake_git.script(STATUS, self.LISTING)
        manager.list()
        assert fake_git.commands() == [STATUS]

    def test_list_is_idempotent(self, manager, fake_git):
        fake_git.script(STATUS, self.LISTING)
        assert manager.list() == manager.list()

    def test_list_is_recomputed(self, manager, fake_git):
        fake_git.script_sequence(STATUS, [f" {SHA_A} lib", f"+{SHA_C} lib"])
        assert manager.list()[0].status is SubmoduleStatus.UP_TO_DATE
        assert manager.list()[0].status is SubmoduleStatus.MODIFIED

    def test_empty_listing(self, manager, fake_git):
        assert manager.list() == []

    def test_listing_error_propagates(self, manager, fake_git):
        fake_git.fail(STATUS, "fatal: not a git repository")
        with pytest.raises(CommandError, match="not a git repository"):
            manager.list()

    def test_recursive_flag(self, manager, fake_git):
        manager.list(ListOptions(recursive=True))
        assert fake_git.commands() == [STATUS_RECURSIVE]

    def test_path_with_spaces(self, manager, fake_git):
        fake_git.script(STATUS, f" {SHA_A} vendor/my lib (heads/main)\n-{SHA_B} docs/user guide")

        records = manager.list()

        assert [(r.path, r.branch) for r in records] == [
            ("vendor/my lib", "heads/main"),
            ("docs/user guide", None),
        ]


class TestVerboseList:

    @pytest.fixture
    def scripted(self, fake_git):
        fake_git.script(STATUS, "\n".join([
            f" {SHA_A} clean (heads/main)",
            f" {SHA_B} dirty",
            f" {SHA_C} diverged",
            f" {SHA_D} ahead",
            f"-{SHA_A} uninit",
        ]))
        fake_git.script(GITMODULES_LIST, gitmodules_listing(
            ("clean", "clean", "https://github.com/org/clean.git", "main"),
            ("dirty", "dirty", "git@github.com:org/dirty.git"),
            ("diverged", "diverged", "https://github.com/org/diverged.git"),
            ("uninit", "uninit", "https://github.com/org/uninit.git"),
        ))
        fake_git.script(["-C", "clean", "rev-parse", "--abbrev-ref", "HEAD"], "main")
        fake_git.script(["-C", "dirty", "status", "--porcelain"], " M src/file.c")
        fake_git.script(["-C", "diverged", "rev-list", "--count", "@{u}..HEAD"], "2")
        fake_git.script(["-C", "diverged", "rev-list", "--count", "HEAD..@{u}"], "3")
        fake_git.script(["-C", "ahead", "rev-list", "--count", "@{u}..HEAD"], "1")
        fake_git.script(["-C", "ahead", "rev-list", "--count", "HEAD..@{u}"], "0")
        fake_git.script(["-C", "ahead", "rev-parse", "--abbrev-ref", "HEAD"], "HEAD")
        return fake_git

    def test_verbose_fields(self, manager, scripted):
        records = {r.path: r for r in manager.list(ListOptions(verbose=True))}

        clean = records["clean"]
        assert clean.status is SubmoduleStatus.UP_TO_DATE
        assert clean.url == "https://github.com/org/clean.git"
        assert clean.declared_branch == "main"
        assert clean.head_branch == "main"
        assert clean.ahead is None and clean.behind is None
        assert clean.uncommitted_changes is False

        assert records["dirty"].status is SubmoduleStatus.MODIFIED
        assert records["dirty"].uncommitted_changes is True

        diverged = records["diverged"]
        assert diverged.status is SubmoduleStatus.DIVERGED
        assert (diverged.ahead, diverged.behind) == (2, 3)

        ahead = records["ahead"]
        assert ahead.status is SubmoduleStatus.AHEAD
        assert ahead.url is None
        assert ahead.head_branch is None

        assert records["uninit"].status is SubmoduleStatus.NOT_INITIALIZED
        assert records["uninit"].url == "https://github.com/org/uninit.git"

    def test_uninitialized_submodules_are_not_probed(self, manager, scripted):
        manager.list(ListOptions(verbose=True))
        assert not [args for args in scripted.commands() if args[:2] == ("-C", "uninit")]

    def test_probe_failures_degrade(self, manager, fake_git):
        fake_git.script(STATUS, f" {SHA_A} lib")
        fake_git.fail(["-C", "lib", "rev-list"], "fatal: no upstream configured for branch 'main'")
        fake_git.fail(["-C", "lib", "status"])

        record = manager.list(ListOptions(verbose=True))[0]

        assert record.status is SubmoduleStatus.UP_TO_DATE
        assert record.ahead is None
        assert record.behind is None
        assert record.uncommitted_changes is False

    def test_nested_urls_come_from_nested_gitmodules(self, manager, fake_git):
        fake_git.script(STATUS_RECURSIVE, f" {SHA_A} a\n {SHA_B} a/b")
        fake_git.script(GITMODULES_LIST, gitmodules_listing(("a", "a", "https://h/org/a.git")))
        fake_git.script(GITMODULES_LIST, gitmodules_listing(("b", "b", "https://h/org/b.git")), cwd="a")

        records = manager.list(ListOptions(verbose=True, recursive=True))

        assert [r.url for r in records] == ["https://h/org/a.git", "https://h/org/b.git"]

    def test_status_filters_by_path(self, manager, scripted):
        assert [r.path for r in manager.status("dirty/")] == ["dirty"]
        assert manager.status("missing") == []
        assert len(manager.status()) == 5


class TestAdd:

    def test_add_runs_git_and_pins_tag(self, manager, fake_git, events):
        manager.add(URL, "vendor/lib/", AddOptions(branch="main", tag="v1.0", depth=1))

        assert fake_git.called("submodule", "add", "-b", "main", "--depth", "1", "--", URL, "vendor/lib")
        assert fake_git.called("-C", "vendor/lib", "checkout", "v1.0")
        assert stages(events) == [("adding", "progress"), ("added", "complete")]
        assert events[-1].path == "vendor/lib"

    def test_add_pins_commit(self, manager, fake_git):
        manager.add(URL, "vendor/lib", AddOptions(commit="abc1234"))
        assert fake_git.called("-C", "vendor/lib", "checkout", "abc1234")

    def test_invalid_url_never_reaches_git(self, manager, fake_git, events):
        with pytest.raises(InvalidUrlError):
            manager.add("not a url", "vendor/lib")
        assert fake_git.calls == []
        assert events == []

    def test_invalid_path_never_reaches_git(self, manager, fake_git):
        with pytest.raises(InvalidPathError):
            manager.add(URL, "../escape")
        assert fake_git.calls == []

    def test_existing_submodule_rejected(self, manager, fake_git):
        fake_git.script(GITMODULES_LIST, LIB_TRACKED)

        with pytest.raises(AlreadyExistsError, match="vendor/lib"):
            manager.add(URL, "vendor/lib")

        assert not [args for args in fake_git.commands() if args[:2] == ("submodule", "add")]

    def test_force_replaces_existing(self, manager, fake_git, events, repo):
        fake_git.script(GITMODULES_LIST, LIB_TRACKED)
        metadata = repo / ".git" / "modules" / "vendor" / "lib"
        metadata.mkdir(parents=True)

        manager.add(URL, "vendor/lib", AddOptions(force=True))

        assert fake_git.called("submodule", "deinit", "-f", "--", "vendor/lib")
        assert fake_git.called("rm", "-f", "--", "vendor/lib")
        assert fake_git.called("submodule", "add", "--force", "--", URL, "vendor/lib")
        assert not metadata.exists()
        assert [e.stage for e in events] == ["removing-old", "removing", "removed", "adding", "added"]

    def test_failed_add_rolls_back_registration(self, manager, fake_git, events):
        fake_git.script_sequence(GITMODULES_LIST, ["", LIB_TRACKED])
        fake_git.fail(["submodule", "add"], "fatal: repository not found")

        with pytest.raises(CommandError, match="repository not found"):
            manager.add(URL, "vendor/lib")

        assert fake_git.called("submodule", "deinit", "-f", "--", "vendor/lib")
        assert fake_git.called("rm", "-f", "--", "vendor/lib")
        assert fake_git.called("config", "-f", ".gitmodules", "--remove-section", "submodule.vendor/lib")
        assert stages(events) == [("adding", "progress")]

    def test_failed_pin_rolls_back(self, manager, fake_git):
        fake_git.script_sequence(GITMODULES_LIST, ["", LIB_TRACKED])
        fake_git.fail(["-C", "vendor/lib", "checkout"], "error: pathspec 'v9' did not match")

        with pytest.raises(CommandError):
            manager.add(URL, "vendor/lib", AddOptions(tag="v9"))

        assert fake_git.called("submodule", "deinit", "-f", "--", "vendor/lib")

    def test_failed_add_without_registration_skips_rollback(self, manager, fake_git):
        fake_git.fail(["submodule", "add"], "fatal: could not create work tree")

        with pytest.raises(CommandError):
            manager.add(URL, "vendor/lib")

        assert not fake_git.called("submodule", "deinit", "-f", "--", "vendor/lib")


class TestRemove:

    def test_untracked_path(self, manager, fake_git):
        with pytest.raises(NotFoundError, match="vendor/lib"):
            manager.remove("vendor/lib")

    def test_dirty_submodule_refused(self, manager, fake_git, repo):
        fake_git.script(GITMODULES_LIST, LIB_TRACKED)
        fake_git.script(["-C", "vendor/lib", "status", "--porcelain"], " M main.c")
        make_initialized(repo, "vendor/lib")

        with pytest.raises(UncommittedChangesError):
            manager.remove("vendor/lib")

        assert not fake_git.called("submodule", "deinit", "-f", "--", "vendor/lib")

    def test_force_removes_dirty_submodule(self, manager, fake_git, repo, events):
        fake_git.script(GITMODULES_LIST, LIB_TRACKED)
        fake_git.script(["-C", "vendor/lib", "status", "--porcelain"], " M main.c")
        make_initialized(repo, "vendor/lib")

        manager.remove("vendor/lib", RemoveOptions(force=True))

        assert fake_git.commands() == [
            GITMODULES_LIST,
            ("rev-parse", "--git-dir"),
            ("submodule", "deinit", "-f", "--", "vendor/lib"),
            ("rm", "-f", "--", "vendor/lib"),
        ]
        assert stages(events) == [("removing", "progress"), ("removed", "complete")]

    def test_uninitialized_submodule_skips_dirty_probe(self, manager, fake_git):
        fake_git.script(GITMODULES_LIST, LIB_TRACKED)

        manager.remove("vendor/lib")

        assert not fake_git.called("-C", "vendor/lib", "status", "--porcelain")
        assert fake_git.called("rm", "-f", "--", "vendor/lib")

    def test_keep_files(self, manager, fake_git):
        fake_git.script(GITMODULES_LIST, LIB_TRACKED)

        manager.remove("vendor/lib", RemoveOptions(keep_files=True))

        assert fake_git.called("rm", "-f", "--cached", "--", "vendor/lib")
        assert fake_git.called("config", "-f", ".gitmodules", "--remove-section", "submodule.vendor/lib")
        assert fake_git.called("add", ".gitmodules")

    def test_metadata_uses_submodule_name(self, manager, fake_git, repo):
        fake_git.script(GITMODULES_LIST, gitmodules_listing(("lib", "vendor/lib", URL)))
        metadata = repo / ".git" / "modules" / "lib"
        metadata.mkdir(parents=True)

        manager.remove("vendor/lib")

        assert not metadata.exists()

    def test_name_escaping_modules_dir_is_refused(self, manager, fake_git, repo):
        fake_git.script(GITMODULES_LIST, gitmodules_listing(("../../victim", "libs/x", URL)))
        (repo / ".git" / "modules").mkdir(parents=True)
        victim = repo / "victim"
        victim.mkdir()
        (victim / "precious.txt").write_text("keep me")

        with pytest.raises(ValidationError, match="Unsafe submodule name"):
            manager.remove("libs/x", RemoveOptions(force=True))

        assert (victim / "precious.txt").exists()
        assert not fake_git.called("submodule", "deinit", "-f", "--", "libs/x")

    @pytest.mark.parametrize("name", ["/etc", "a/../../b", "../sibling", "\\\\server\\share"])
    def test_unsafe_names_are_refused(self, manager, fake_git, repo, name):
        fake_git.script(GITMODULES_LIST, f"submodule.{name}.path=libs/x\nsubmodule.{name}.url={URL}")

        with pytest.raises(ValidationError):
            manager.remove("libs/x", RemoveOptions(force=True))

        assert not fake_git.called("rm", "-f", "--", "libs/x")

    def test_symlink_out_of_modules_dir_is_refused(self, manager, fake_git, repo):
        fake_git.script(GITMODULES_LIST, gitmodules_listing(("lib", "vendor/lib", URL)))
        modules = repo / ".git" / "modules"
        modules.mkdir(parents=True)
        outside = repo / "outside"
        outside.mkdir()
        (modules / "lib").symlink_to(outside, target_is_directory=True)

        with pytest.raises(ValidationError):
            manager.remove("vendor/lib")

        assert outside.exists()

    def test_add_rollback_leaves_directories_outside_modules_alone(self, manager, fake_git, repo):
        fake_git.script_sequence(GITMODULES_LIST, ["", gitmodules_listing(("../../victim", "libs/x", URL))])
        fake_git.fail(["submodule", "add"], "fatal: repository not found")
        (repo / ".git" / "modules").mkdir(parents=True)
        victim = repo / "victim"
        victim.mkdir()

        with pytest.raises(CommandError, match="repository not found"):
            manager.add(URL, "libs/x")

        assert victim.exists()


class TestUpdateSyncForeach:

    def test_update_uses_default_jobs(self, manager, fake_git, events):
        manager.update("lib", UpdateOptions(init=True))

        assert fake_git.called("submodule", "update", "--init", "--jobs", "4", "--", "lib")
        assert stages(events) == [("updating", "progress"), ("updated", "complete")]

    def test_update_uses_configured_jobs(self, manager, fake_git, config):
        config.set("default.jobs", 2)
        manager.update(options=UpdateOptions(recursive=True, remote=True))
        assert fake_git.called("submodule", "update", "--recursive", "--remote", "--jobs", "2")

    def test_update_explicit_jobs(self, manager, fake_git):
        manager.update(options=UpdateOptions(merge=True, jobs=8))
        assert fake_git.called("submodule", "update", "--merge", "--jobs", "8")

    def test_update_invalid_path(self, manager, fake_git):
        with pytest.raises(InvalidPathError):
            manager.update("/abs")
        assert fake_git.calls == []

    def test_sync(self, manager, fake_git, events):
        manager.sync()
        assert fake_git.called("submodule", "sync", "--recursive")
        assert stages(events) == [("syncing", "progress"), ("synced", "complete")]

    def test_foreach(self, manager, fake_git, events):
        fake_git.script(["submodule", "foreach"], "Entering 'lib'\nclean")

        output = manager.foreach("git status --short")

        assert output == "Entering 'lib'\nclean"
        assert fake_git.called("submodule", "foreach", "--recursive", "git status --short")
        assert [e.message for e in events] == ["git status --short", "git status --short"]

    def test_foreach_rejects_empty_command(self, manager, fake_git):
        with pytest.raises(ValidationError):
            manager.foreach("  ")
        assert fake_git.calls == []

    def test_checkout_one(self, manager, fake_git):
        manager.checkout("develop", "lib")
        assert fake_git.called("-C", "lib", "checkout", "develop")

    def test_checkout_all(self, manager, fake_git):
        manager.checkout("develop")
        assert fake_git.called("submodule", "foreach", "--recursive", "git checkout develop")

    @pytest.mark.parametrize("branch", ["", "--orphan", "two words"])
    def test_checkout_rejects_bad_ref(self, manager, fake_git, branch):
        with pytest.raises(ValidationError):
            manager.checkout(branch)
        assert fake_git.calls == []


class TestPresetsAndAliases:

    def test_run_alias(self, manager, fake_git, config):
        config.set_alias("pull", "git pull --ff-only")
        manager.run_alias("pull")
        assert fake_git.called("submodule", "foreach", "--recursive", "git pull --ff-only")

    def test_unknown_alias(self, manager):
        with pytest.raises(ConfigError, match="Unknown alias"):
            manager.run_alias("nope")

    def test_add_preset(self, manager, fake_git, config):
        config.save_preset("web", [
            {"url": "https://github.com/org/ui.git", "path": "ui"},
            {"url": "https://github.com/org/api.git", "path": "api", "branch": "dev"},
        ])

        result = manager.add_preset("web", jobs=1)

        assert sorted(result.success) == ["api", "ui"]
        assert fake_git.called("submodule", "add", "-b", "dev", "--", "https://github.com/org/api.git", "api")

    def test_unknown_preset(self, manager):
        with pytest.raises(ConfigError, match="Unknown preset"):
            manager.add_preset("nope")


class TestForPath:

    def test_nested_manager_shares_collaborators(self, manager, repo):
        nested = manager.for_path("vendor/lib")

        assert nested.repo_path == repo / "vendor/lib"
        assert nested.executor is manager.executor
        assert nested.config is manager.config
        assert nested.events is manager.events

    def test_nested_commands_run_in_submodule(self, manager, fake_git):
        fake_git.script(STATUS, f" {SHA_A} inner", cwd="vendor/lib")
        assert [r.path for r in manager.for_path("vendor/lib").list()] == ["inner"]

    def test_default_manager_builds_real_collaborators(self, repo):
        manager = SubmoduleManager(repo)
        assert manager.git.repo_path == repo
        assert manager.config.local_path == repo / ".lsmrc"

"""Tests for the query driver."""

import logging

import pytest

from pacdump import orchestrator, pacman_conf
from pacdump.config_manager import Settings
from pacdump.errors import DatabaseRegistrationError, NotExplicitError, PackageNotFoundError
from pacdump.orchestrator import PackageFilters, QueryOrchestrator, find_in_databases, open_from_settings
from pacdump.siglevel import SigLevel
from pacdump.storage import FixtureHandle


class TestPackageFilters:
    """Tests for filter validation."""

    def test_defaults(self):
        filters = PackageFilters()

        assert not filters.sync
        assert not filters.include_all

    def test_recurse_implies_all(self):
        assert PackageFilters(recurse="git").include_all

    @pytest.mark.parametrize("flag", ["optional", "summary"])
    def test_requires_recurse(self, flag):
        with pytest.raises(ValueError, match="require --recurse"):
            PackageFilters(**{flag: True})


class TestFindInDatabases:
    def test_found(self, universe):
        assert find_in_databases(universe.syncdbs, "git").version == "2.45.2-1"

    def test_not_found(self, universe):
        with pytest.raises(PackageNotFoundError, match="'vim' not found in local"):
            find_in_databases([universe.localdb], "vim")

    def test_lists_searched_databases(self, universe):
        with pytest.raises(PackageNotFoundError, match="core, extra"):
            find_in_databases(universe.syncdbs, "yay")


class TestGeneratePkgInfo:
    """Tests for building single records."""

    def test_explicit_filter(self, universe):
        query = QueryOrchestrator(universe)

        with pytest.raises(NotExplicitError):
            query.generate_pkg_info(universe.localdb.get_package("glibc"))

    def test_same_build_enriched(self, universe):
        record = QueryOrchestrator(universe).generate_pkg_info(universe.localdb.get_package("bash"))

        assert record.repository == "core"
        assert record.install_date == 1718000000
        assert record.companion.repository == "local"
        assert record.required_by == ["bash-completion"]

    def test_stale_enriched(self, universe):
        record = QueryOrchestrator(universe).generate_pkg_info(universe.localdb.get_package("git"))

        assert record.repository == "local"
        assert record.version == "2.44.0-1"
        assert record.companion.version == "2.45.2-1"

    def test_plain(self, universe):
        query = QueryOrchestrator(universe, PackageFilters(plain=True))
        record = query.generate_pkg_info(universe.localdb.get_package("bash"))

        assert record.repository == "local"
        assert record.companion is None
        assert record.required_by == ["bash-completion"]

    def test_sync_side(self, universe):
        query = QueryOrchestrator(universe, PackageFilters(sync=True))
        record = query.generate_pkg_info(universe.syncdbs[0].get_package("glibc"))

        assert record.repository == "core"
        assert record.install_reason == "Depend"
        assert record.companion.repository == "local"

    def test_key_ids_for_sync_packages(self, make_handle, pkg, make_signature):
        signature = make_signature("0123456789ABCDEF")
        handle = make_handle(
            local=[pkg("a", base64_sig=signature)],
            core=[pkg("a", base64_sig=signature), pkg("b", base64_sig="%%%")],
        )
        query = QueryOrchestrator(handle, PackageFilters(sync=True, plain=True))

        assert query.generate_pkg_info(handle.syncdbs[0].get_package("a")).key_ids == ["0123456789ABCDEF"]
        assert query.generate_pkg_info(handle.syncdbs[0].get_package("b")).key_ids[0].startswith("error: ")
        local = QueryOrchestrator(handle, PackageFilters(plain=True))
        assert local.generate_pkg_info(handle.localdb.get_package("a")).key_ids is None

    def test_lookup_ignores_explicit_filter(self, universe):
        record = QueryOrchestrator(universe).lookup("glibc")

        assert record.name == "glibc"
        assert record.install_reason == "Depend"


class TestDump:
    """Tests for whole-database dumps."""

    def test_explicit_local(self, universe):
        records = list(QueryOrchestrator(universe).dump())

        assert [r.name for r in records] == ["bash", "git", "yay"]

    def test_all_local(self, universe):
        records = list(QueryOrchestrator(universe, PackageFilters(all=True)).dump())

        assert len(records) == 15

    def test_sync(self, universe):
        records = list(QueryOrchestrator(universe, PackageFilters(sync=True)).dump())

        assert len(records) == 22
        assert records[0].name == "bash"
        assert records[-1].name == "vim-runtime"

    def test_failures_skipped(self, universe):
        class Flaky(QueryOrchestrator):
            def generate_pkg_info(self, pkg, check_explicit=True):
                if pkg.name == "git":
                    raise RuntimeError("broken")
                return super().generate_pkg_info(pkg, check_explicit)

        records = list(Flaky(universe).dump())

        assert [r.name for r in records] == ["bash", "yay"]

    def test_run(self, universe):
        payload = QueryOrchestrator(universe).run()

        assert [p["name"] for p in payload] == ["bash", "git", "yay"]
        assert payload[1]["companion"]["version"] == "2.45.2-1"


class TestRecurse:
    """Tests for closure queries."""

    def test_local_closure(self, universe):
        state = QueryOrchestrator(universe, PackageFilters(recurse="curl")).recurse("curl")

        assert [r.name for r in state.packages] == [
            "linux-api-headers", "tzdata", "iana-etc", "filesystem", "glibc", "openssl", "curl",
        ]
        glibc = state.packages[4]
        assert glibc.repository == "core"
        assert glibc.install_reason == "Depend"
        assert "curl" in glibc.required_by

    def test_summary(self, universe):
        payload = QueryOrchestrator(universe, PackageFilters(recurse="curl", summary=True)).run()

        assert payload == [
            "openssl=3.3.1-1",
            "iana-etc=20240612-1",
            "filesystem=2024.04.07-1",
            "tzdata=2024a-1",
            "linux-api-headers=6.8-1",
            "glibc=2.39-1",
            "curl=8.8.0-1",
        ]

    def test_sync_closure_with_unsatisfiable(self, universe):
        payload = QueryOrchestrator(universe, PackageFilters(sync=True, recurse="vim")).run()

        vim = payload[-1]
        assert vim["name"] == "vim"
        assert [d["satisfier"] for d in vim["depends_on"]] == ["vim-runtime=9.1.0-1", None, "glibc=2.39-1"]

    def test_optional(self, universe):
        payload = QueryOrchestrator(universe, PackageFilters(sync=True, recurse="bash", optional=True)).run()
        names = [p["name"] for p in payload]

        assert names[-1] == "bash"
        assert "bash-completion" in names
        assert names.count("bash") == 1

    def test_missing_root(self, universe):
        with pytest.raises(PackageNotFoundError):
            QueryOrchestrator(universe, PackageFilters(recurse="vim")).run()


class TestRecurseAgainstDifferingLocalBuild:
    """Sync closures whose root is installed as another build."""

    @pytest.fixture
    def handle(self, make_handle, pkg):
        return make_handle(
            local=[pkg("a", "1.0-1", packager="x", depends=["b"])],
            core=[pkg("a", "2.0-1", packager="y", depends=["b"]), pkg("b", depends=["a"])],
        )

    def test_cycle_back_to_root_visits_it_once(self, handle):
        state = QueryOrchestrator(handle, PackageFilters(sync=True, recurse="a")).recurse("a")

        assert state.keys() == ["a=2.0-1", "b=1.0-1"]
        assert [r.name for r in state.packages] == ["b", "a"]
        assert state.packages[0].depends_on[0].satisfier == "a=2.0-1"

    def test_root_keeps_reconciled_metadata(self, handle):
        state = QueryOrchestrator(handle, PackageFilters(sync=True, recurse="a")).recurse("a")

        root = state.packages[-1]
        assert root.repository == "local"
        assert root.version == "1.0-1"
        assert root.companion.version == "2.0-1"
        assert root.depends_on[0].satisfier == "b=1.0-1"

    def test_dependencies_expanded_from_sync_package(self, make_handle, pkg):
        handle = make_handle(
            local=[pkg("a", "1.0-1", packager="x", depends=["gone"])],
            core=[pkg("a", "2.0-1", packager="y", depends=["b"]), pkg("b"), pkg("gone")],
        )

        state = QueryOrchestrator(handle, PackageFilters(sync=True, recurse="a")).recurse("a")

        assert state.keys() == ["a=2.0-1", "b=1.0-1"]
        assert [d.dep_string for d in state.packages[-1].depends_on] == ["b"]

    def test_summary_keys_come_from_sync_databases(self, universe):
        payload = QueryOrchestrator(universe, PackageFilters(sync=True, recurse="git", summary=True)).run()

        sync_keys = {f"{p.name}={p.version}" for db in universe.syncdbs for p in db.all_packages()}
        names = [key.split("=", 1)[0] for key in payload]
        assert set(payload) <= sync_keys
        assert len(names) == len(set(names))
        assert payload[-1] == "git=2.45.2-1"
        assert "git=2.44.0-1" not in payload


class TestCounterpartLogging:
    def test_missing_counterpart_logged_once(self, universe, caplog):
        caplog.set_level(logging.INFO, logger="pacdump")

        QueryOrchestrator(universe).generate_pkg_info(universe.localdb.get_package("yay"))

        messages = [r.getMessage() for r in caplog.records if r.levelno == logging.INFO]
        assert len([m for m in messages if "yay" in m and "counterpart" in m]) == 1


class TestOpenFromSettings:
    """Tests for opening databases from settings."""

    def test_fixture(self, universe_path):
        handle = open_from_settings(Settings(fixture=universe_path))

        assert isinstance(handle, FixtureHandle)

    @pytest.fixture
    def live(self, monkeypatch):
        opened = {}

        def fake_open_handle(**kwargs):
            opened.update(kwargs)
            return "handle"

        monkeypatch.setattr(orchestrator, "open_handle", fake_open_handle)
        monkeypatch.setattr(orchestrator, "default_siglevel", lambda: SigLevel.PACKAGE)
        monkeypatch.setattr(orchestrator, "repo_siglevel", lambda repo, default: default | SigLevel.DATABASE)
        return opened

    def test_live_from_pacman_conf(self, live, monkeypatch):
        monkeypatch.setattr(pacman_conf, "root_dir", lambda: "/")
        monkeypatch.setattr(pacman_conf, "db_path", lambda: "/var/lib/pacman/")
        monkeypatch.setattr(pacman_conf, "repo_list", lambda: ["core", "extra"])

        assert open_from_settings(Settings()) == "handle"
        assert live == {
            "root": "/",
            "dbpath": "/var/lib/pacman/",
            "repos": [("core", 1025), ("extra", 1025)],
        }

    def test_settings_override_pacman_conf(self, live, monkeypatch):
        def unavailable():
            raise AssertionError("pacman-conf should not be consulted")

        monkeypatch.setattr(pacman_conf, "root_dir", unavailable)
        monkeypatch.setattr(pacman_conf, "db_path", unavailable)
        monkeypatch.setattr(pacman_conf, "repo_list", unavailable)

        open_from_settings(Settings(root="/mnt", dbpath="/mnt/db/", repos=["core"]))

        assert live == {"root": "/mnt", "dbpath": "/mnt/db/", "repos": [("core", 1025)]}

    def test_pacman_conf_missing(self, live, monkeypatch):
        def missing():
            raise OSError("pacman-conf: not found")

        monkeypatch.setattr(pacman_conf, "root_dir", missing)
        monkeypatch.setattr(pacman_conf, "db_path", missing)
        monkeypatch.setattr(pacman_conf, "repo_list", missing)

        open_from_settings(Settings())

        assert live == {"root": "/", "dbpath": "/var/lib/pacman/", "repos": []}

    def test_bad_siglevel(self, live, monkeypatch):
        def bad(repo, default):
            raise ValueError("failed to parse the signature level: Required")

        monkeypatch.setattr(orchestrator, "repo_siglevel", bad)

        with pytest.raises(DatabaseRegistrationError, match="signature level"):
            open_from_settings(Settings(root="/", dbpath="/db/", repos=["core"]))

import os

from pacsvc.site_stat_store import DIRECT_DELTA, MAX_COUNT, USER_BLOCKED, USER_DIRECT, SiteStatStore


def _store(tmp_path):
    s = SiteStatStore(os.path.join(str(tmp_path), "sitestat.db"))
    s.init_db()
    return s


def test_direct_visit_lists_reduced_domain(tmp_path):
    s = _store(tmp_path)
    assert s.record_visit("www.Example.com", blocked=False) == "example.com"
    assert s.get_direct_list() == ["example.com"]


def test_private_and_single_label_hosts_are_not_recorded(tmp_path):
    s = _store(tmp_path)
    assert s.record_visit("192.168.1.1", blocked=False) == ""
    assert s.record_visit("intranet", blocked=False) == ""
    assert s.get_direct_list() == []


def test_blocked_site_is_not_direct(tmp_path):
    s = _store(tmp_path)
    s.record_visit("a.blocked.com", blocked=False)
    s.record_visit("a.blocked.com", blocked=True)
    site = s.get_site("blocked.com")
    assert site is not None
    assert site.blocked_cnt == 1
    assert site.direct_cnt == 0
    assert not site.as_direct
    assert s.get_direct_list() == []


def test_blocked_site_recovers_after_enough_direct_visits(tmp_path):
    s = _store(tmp_path)
    s.record_visit("flaky.org", blocked=True)
    for _ in range(DIRECT_DELTA):
        s.record_visit("flaky.org", blocked=False)
    assert s.get_direct_list() == []
    s.record_visit("flaky.org", blocked=False)
    assert s.get_site("flaky.org").as_direct
    assert s.get_direct_list() == ["flaky.org"]


def test_counters_saturate(tmp_path):
    s = _store(tmp_path)
    for _ in range(MAX_COUNT + 5):
        s.record_visit("busy.net", blocked=False)
    assert s.get_site("busy.net").direct_cnt == MAX_COUNT


def test_user_lists_override_learning(tmp_path):
    s = _store(tmp_path)
    direct_file = tmp_path / "direct"
    direct_file.write_text("# always direct\n.corp.example.com\n\nmirror.org  # comment\nbad domain\n")
    blocked_file = tmp_path / "blocked"
    blocked_file.write_text("blocked.com\n")

    assert s.load_user_list(str(direct_file), direct=True) == 2
    assert s.load_user_list(str(blocked_file), direct=False) == 1
    for _ in range(20):
        s.record_visit("www.blocked.com", blocked=False)
    s.record_visit("mirror.org", blocked=True)

    assert s.get_site("corp.example.com").user_spec == USER_DIRECT
    assert s.get_site("blocked.com").user_spec == USER_BLOCKED
    assert s.get_direct_list() == ["corp.example.com", "mirror.org"]


def test_missing_user_file_loads_nothing(tmp_path):
    s = _store(tmp_path)
    assert s.load_user_list(str(tmp_path / "absent"), direct=True) == 0
    assert s.load_user_list("", direct=True) == 0


def test_direct_list_is_ordered(tmp_path):
    s = _store(tmp_path)
    for h in ("z.com", "a.com", "m.com"):
        s.record_visit(h, blocked=False)
    assert s.get_direct_list() == ["a.com", "m.com", "z.com"]


def test_prune_keeps_user_entries(tmp_path):
    s = _store(tmp_path)
    s.record_visit("old.com", blocked=False)
    s.set_user_domain("pinned.com", direct=True)
    with s._connect() as conn:
        conn.execute("UPDATE sites SET last_seen = 0")

    removed = s.prune_old_entries(retention_days=1, vacuum=True)

    assert removed == 1
    assert s.get_direct_list() == ["pinned.com"]

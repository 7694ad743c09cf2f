import json

import pytest

from cli import _resolve_date, build_parser, main
from settings import ENV_VARS

API = "https://api.github.com"


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for var in list(ENV_VARS.values()) + ['TRACKER_SETTINGS']:
        monkeypatch.delenv(var, raising=False)
    return tmp_path


def _base_args(tmp_path):
    return [
        '--settings', str(tmp_path / 'absent.yaml'),
        '--cache', str(tmp_path / 'cache.db'),
        '--mappings', str(tmp_path / 'mappings.json'),
    ]


def _github_args(tmp_path):
    return _base_args(tmp_path) + ['--github-token', 'tok', '--github-user', 'dev', '--github-org', 'acme']


def _route_github(fake_http):
    fake_http.add('GET', f"{API}/orgs/acme/repos", [{'name': 'a', 'full_name': 'acme/a'}])
    fake_http.add('GET', f"{API}/repos/acme/a/commits", [
        {'sha': 's1', 'html_url': 'https://github.com/acme/a/commit/s1', 'commit': {'message': 'Fix checkout', 'author': {'date': '2026-03-05T09:00:00Z'}}},
    ])


def test_commits_json_includes_tickets(fake_http, clean_env, capsys):
    tmp_path = clean_env
    (tmp_path / 'mappings.json').write_text(json.dumps({'checkout': ['TCK-1']}), encoding='utf-8')
    _route_github(fake_http)

    code = main(_github_args(tmp_path) + ['commits', '--date', '05.03.2026', '--json'])

    assert code == 0
    out = json.loads(capsys.readouterr().out)
    assert [c['id'] for c in out] == ['s1']
    assert out[0]['tickets'] == ['TCK-1']
    assert (tmp_path / 'cache.db').exists()


def test_commits_text_output_and_cache_reuse(fake_http, clean_env, capsys):
    tmp_path = clean_env
    _route_github(fake_http)

    assert main(_github_args(tmp_path) + ['commits', '--date', '05.03.2026']) == 0
    calls = len(fake_http.calls)
    assert main(_github_args(tmp_path) + ['commits', '--date', '05.03.2026']) == 0

    assert len(fake_http.calls) == calls
    out = capsys.readouterr().out
    assert out.count('Fix checkout') == 2
    assert 'GitHub' in out


def test_unconfigured_commits_fail_with_message(fake_http, clean_env, capsys):
    code = main(_base_args(clean_env) + ['commits', '--date', '05.03.2026'])
    assert code == 1
    assert "Please configure GitHub or DevOps settings" in capsys.readouterr().err
    assert fake_http.calls == []


def test_invalid_date_reports_error(fake_http, clean_env, capsys):
    code = main(_github_args(clean_env) + ['commits', '--date', 'tomorrow'])
    assert code == 1
    assert "Invalid date" in capsys.readouterr().err


def test_show_skipped_warns_on_stderr(fake_http, clean_env, capsys):
    fake_http.add('GET', f"{API}/orgs/acme/repos", [{'name': 'a', 'full_name': 'acme/a'}, {'name': 'b', 'full_name': 'acme/b'}])
    fake_http.add('GET', f"{API}/repos/acme/a/commits", [])
    fake_http.add('GET', f"{API}/repos/acme/b/commits", {'message': 'boom'}, status=500)

    code = main(_github_args(clean_env) + ['commits', '--date', '05.03.2026', '--show-skipped'])

    captured = capsys.readouterr()
    assert code == 0
    assert "No commits for this date" in captured.out
    assert "skipped GitHub repository acme/b (HTTP 500)" in captured.err


def test_tasks_require_devops(fake_http, clean_env, capsys):
    assert main(_github_args(clean_env) + ['tasks']) == 1
    assert "Please configure DevOps settings" in capsys.readouterr().err


def test_map_add_list_remove(clean_env, capsys):
    tmp_path = clean_env
    args = _base_args(tmp_path)

    assert main(args + ['map', 'add', 'TCK-1', 'Checkout']) == 0
    assert json.loads((tmp_path / 'mappings.json').read_text(encoding='utf-8')) == {'checkout': ['TCK-1']}
    assert main(args + ['map', 'list']) == 0
    assert "TCK-1 -> checkout" in capsys.readouterr().out

    assert main(args + ['map', 'remove', 'TCK-1', 'checkout']) == 0
    assert json.loads((tmp_path / 'mappings.json').read_text(encoding='utf-8')) == {}
    assert main(args + ['map', 'remove', 'TCK-1', 'checkout']) == 0
    assert "Mappings unchanged" in capsys.readouterr().out


def test_cache_info_and_forced_clear(fake_http, clean_env, capsys):
    tmp_path = clean_env
    _route_github(fake_http)
    main(_github_args(tmp_path) + ['commits', '--date', '05.03.2026'])
    capsys.readouterr()

    assert main(_base_args(tmp_path) + ['cache', 'info']) == 0
    assert json.loads(capsys.readouterr().out)['count'] == 1
    assert main(_base_args(tmp_path) + ['cache', 'clear', '--force']) == 0
    capsys.readouterr()
    main(_base_args(tmp_path) + ['cache', 'list'])
    assert json.loads(capsys.readouterr().out) == []


def test_cache_clear_aborts_without_confirmation(clean_env, monkeypatch, capsys):
    monkeypatch.setattr('builtins.input', lambda prompt: 'n')
    assert main(_base_args(clean_env) + ['cache', 'clear']) == 0
    assert "Aborted cache clear." in capsys.readouterr().out


def test_verify_exit_code(fake_http, clean_env, capsys):
    fake_http.add('GET', f"{API}/users/dev", {'message': 'Bad credentials'}, status=401)
    assert main(_github_args(clean_env) + ['verify']) == 1
    out = capsys.readouterr().out
    assert "github: Connection failed: Invalid token" in out
    assert "devops: not configured" in out


def test_resolve_date():
    assert _resolve_date('27.01.26, Tuesday') == '27.01.2026'
    assert _resolve_date('garbage') == 'garbage'
    assert len(_resolve_date('')) == 10


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_settings_command_redacts_tokens(clean_env, capsys):
    assert main(_github_args(clean_env) + ['--devops-token', 'pat', 'settings']) == 0
    out = json.loads(capsys.readouterr().out)
    assert out['token'] == '***'
    assert out['devops_token'] == '***'
    assert out['organization'] == 'acme'
    assert out['github_missing'] == []
    assert out['devops_missing'] == ['devops_organization']

    assert main(_github_args(clean_env) + ['settings', '--show-secrets']) == 0
    assert json.loads(capsys.readouterr().out)['token'] == 'tok'

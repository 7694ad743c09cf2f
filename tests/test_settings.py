import os
import tempfile

import pytest

from errors import ConfigurationError
from normalize.models import SourceService
from settings import Settings, SourceSelection, load_settings, require_devops


def _write(tmp_path, text):
    path = tmp_path / 'settings.yaml'
    path.write_text(text, encoding='utf-8')
    return str(path)


def test_file_then_environment_then_overrides(tmp_path):
    path = _write(tmp_path, "token: file-token\nusername: alice\norganization: acme\ndevops_organization: file-org\n")
    env = {'GITHUB_TOKEN': 'env-token', 'DEVOPS_TOKEN': 'pat'}
    settings = load_settings(path, environ=env, overrides={'devops_organization': 'cli-org', 'username': None})

    assert settings.token == 'env-token'
    assert settings.username == 'alice'
    assert settings.devops_organization == 'cli-org'
    assert settings.github_enabled and settings.devops_enabled


def test_missing_file_and_empty_environment():
    with tempfile.TemporaryDirectory() as tmp:
        settings = load_settings(os.path.join(tmp, 'absent.yaml'), environ={})
    assert not settings.github_enabled
    assert settings.commit_sources() == []
    assert settings.missing_github_fields() == ['token', 'username', 'organization']


def test_settings_path_from_environment(tmp_path):
    path = _write(tmp_path, "devops_token: pat\ndevops_organization: org\n")
    settings = load_settings(environ={'TRACKER_SETTINGS': path})
    assert settings.devops_enabled


def test_whitespace_only_fields_do_not_enable_a_service():
    settings = Settings(token='  ', username='alice', organization='acme')
    assert not settings.github_enabled
    assert settings.missing_github_fields() == ['token']


def test_commit_sources_follow_selection():
    full = dict(token='t', username='u', organization='o', devops_token='p', devops_organization='d')
    assert Settings(**full).commit_sources() == [SourceService.GITHUB, SourceService.DEVOPS]
    assert Settings(commits_source='devops', **full).commit_sources() == [SourceService.DEVOPS]
    assert Settings(commits_source=SourceSelection.GITHUB, **full).commit_sources() == [SourceService.GITHUB]
    # selected but unconfigured services are left out
    assert Settings(token='t', username='u', organization='o', commits_source='devops').commit_sources() == []


def test_unknown_source_selection():
    with pytest.raises(ConfigurationError):
        SourceSelection.parse('gitlab')


def test_invalid_yaml(tmp_path):
    path = _write(tmp_path, "token: [unclosed\n")
    with pytest.raises(ConfigurationError):
        load_settings(path, environ={})


def test_non_mapping_yaml(tmp_path):
    path = _write(tmp_path, "- just\n- a list\n")
    with pytest.raises(ConfigurationError):
        load_settings(path, environ={})


def test_to_dict_redacts_tokens():
    data = Settings(token='secret', devops_token='pat', devops_organization='org').to_dict()
    assert data['token'] == '***'
    assert data['devops_token'] == '***'
    assert data['devops_organization'] == 'org'
    assert Settings(token='secret').to_dict(redact=False)['token'] == 'secret'


def test_require_devops_names_missing_fields():
    with pytest.raises(ConfigurationError) as exc:
        require_devops(Settings(devops_token='pat'))
    assert 'devops_organization' in str(exc.value)


def test_unquoted_yaml_scalars_become_text(tmp_path):
    path = _write(tmp_path, "devops_token: pat\ndevops_organization: 12345\ntoken: true\n")
    settings = load_settings(path, environ={})
    assert settings.devops_organization == '12345'
    assert settings.token == 'True'
    assert settings.devops_enabled


def test_nested_yaml_value_is_a_configuration_error(tmp_path):
    path = _write(tmp_path, "devops_token: pat\ndevops_organization:\n  name: org\n")
    with pytest.raises(ConfigurationError) as exc:
        load_settings(path, environ={})
    assert 'devops_organization' in str(exc.value)

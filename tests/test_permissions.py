import pytest

from plugin_installer import PermissionGate, Policy
from plugin_installer.errors import PermissionDenied
from plugin_installer.models import InstallOptions, InstallSpec, Permissions, PermissionsSpec


def test_resolve_defaults_missing_arrays():
    assert PermissionGate.resolve(None) == Permissions()
    resolved = PermissionGate.resolve(PermissionsSpec(network=['api.example.com']))
    assert resolved.network == ['api.example.com']
    assert resolved.fs == []
    assert resolved.instances == []


def test_resolve_install_defaults():
    gate = PermissionGate(Policy(dependency_registry='https://pypi.internal/simple'))

    options = gate.resolve_install(None)
    assert options == InstallOptions(registry='https://pypi.internal/simple')

    options = gate.resolve_install(InstallSpec.model_validate({'mode': 'dependency-install', 'ignoreScripts': False}))
    assert options.mode == 'dependency-install'
    assert options.production is True
    assert options.ignore_scripts is False
    assert options.frozen_lockfile is False
    assert options.registry == 'https://pypi.internal/simple'


def test_empty_permissions_always_pass():
    PermissionGate(Policy()).validate(Permissions())


def test_network_requires_policy_flag():
    with pytest.raises(PermissionDenied):
        PermissionGate(Policy()).validate(Permissions(network=['api.example.com']))

    PermissionGate(Policy(allow_network=True)).validate(Permissions(network=['api.example.com']))


@pytest.mark.parametrize('rule, allowed', [
    ('api.example.com/v1', True),
    ('api.example.com/*', True),
    ('api.*', True),
    ('evil.com', False),
    ('*', False),
    ('', False),
])
def test_network_allowlist_prefix_match(rule, allowed):
    gate = PermissionGate(Policy(allow_network=True, network_allowlist=['api.example.com*']))

    if allowed:
        gate.validate(Permissions(network=[rule]))
    else:
        with pytest.raises(PermissionDenied) as exc_info:
            gate.validate(Permissions(network=[rule]), plugin_id='echo-bot')
        assert exc_info.value.context['rule'] == rule
        assert exc_info.value.context['plugin_id'] == 'echo-bot'


def test_fs_requires_policy_flag():
    with pytest.raises(PermissionDenied):
        PermissionGate(Policy()).validate(Permissions(fs=['/data']))

    PermissionGate(Policy(allow_fs=True)).validate(Permissions(fs=['/data']))


def test_validate_install():
    install = InstallOptions(mode='dependency-install')

    PermissionGate(Policy()).validate_install(InstallOptions())
    with pytest.raises(PermissionDenied):
        PermissionGate(Policy(allow_network=True)).validate_install(install)
    with pytest.raises(PermissionDenied):
        PermissionGate(Policy(allow_dependency_install=True)).validate_install(install)

    PermissionGate(Policy(allow_network=True, allow_dependency_install=True)).validate_install(install)

    scripts = InstallOptions(mode='dependency-install', ignore_scripts=False)
    with pytest.raises(PermissionDenied):
        PermissionGate(Policy(allow_network=True, allow_dependency_install=True)).validate_install(scripts)
    PermissionGate(Policy(
        allow_network=True,
        allow_dependency_install=True,
        allow_install_scripts=True,
    )).validate_install(scripts)


def test_policy_from_env():
    policy = Policy.from_env({
        'PLUGIN_ALLOW_NETWORK': 'Yes',
        'PLUGIN_ALLOW_FS': '0',
        'PLUGIN_ALLOW_DEPENDENCY_INSTALL': 'on',
        'PLUGIN_NETWORK_ALLOWLIST': 'api.example.com, ,cdn.example.com/*',
        'PLUGIN_DEPENDENCY_REGISTRY': ' https://pypi.internal/simple ',
    })

    assert policy.allow_network is True
    assert policy.allow_fs is False
    assert policy.allow_dependency_install is True
    assert policy.allow_install_scripts is False
    assert policy.network_allowlist == ['api.example.com', 'cdn.example.com/*']
    assert policy.dependency_registry == 'https://pypi.internal/simple'

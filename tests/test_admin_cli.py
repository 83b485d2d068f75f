from candycost.cli import main
from candycost.models import User


def admins(app):
    with app.app_context():
        return [u.email for u in User.query.filter_by(role='admin').all()]


def test_create_first_admin_from_arguments(app):
    code = main(['create-first', 'Dona@Confeitaria.com', 'Forte#2024', 'Dona', 'Benta'], app=app)

    assert code == 0
    assert admins(app) == ['dona@confeitaria.com']


def test_create_first_admin_from_environment(app, monkeypatch):
    monkeypatch.setenv('ADMIN_EMAIL', 'env@confeitaria.com')
    monkeypatch.setenv('ADMIN_PASSWORD', 'Forte#2024')
    monkeypatch.setenv('ADMIN_FIRST_NAME', 'Env')

    assert main(['create-first'], app=app) == 0
    assert admins(app) == ['env@confeitaria.com']


def test_create_first_only_once(app, capsys):
    main(['create-first', 'a@confeitaria.com', 'Forte#2024', 'A'], app=app)

    code = main(['create-first', 'b@confeitaria.com', 'Forte#2024', 'B'], app=app)

    assert code == 1
    assert 'administrador' in capsys.readouterr().err
    assert admins(app) == ['a@confeitaria.com']


def test_create_first_rejects_weak_password(app):
    assert main(['create-first', 'a@confeitaria.com', 'fraca', 'A'], app=app) == 1
    assert admins(app) == []


def test_promote_and_list(app, user_client, capsys):
    from conftest import USER_EMAIL

    assert main(['promote', USER_EMAIL], app=app) == 0
    assert admins(app) == [USER_EMAIL]

    assert main(['list-users'], app=app) == 0
    assert USER_EMAIL in capsys.readouterr().out


def test_promote_unknown_user(app):
    assert main(['promote', 'ninguem@confeitaria.com'], app=app) == 1


def test_help_and_unknown_command(app, capsys):
    assert main(['help'], app=app) == 0
    assert 'create-first' in capsys.readouterr().out
    assert main(['desconhecido'], app=app) == 1


def test_launcher_script_uses_package_entry_point():
    import runpy
    from pathlib import Path
    import candycost.cli

    script = Path(__file__).resolve().parent.parent / 'scripts' / 'admin_cli.py'
    namespace = runpy.run_path(str(script), run_name='admin_cli')

    assert namespace['main'] is candycost.cli.main

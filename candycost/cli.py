"""
CandyCost admin command line.

Usage:
    python scripts/admin_cli.py create-first [email] [password] [first_name] [last_name]
    python scripts/admin_cli.py promote <email>
    python scripts/admin_cli.py list-users
    python scripts/admin_cli.py help

The same commands are installed as the `candycost-admin` script.

Missing create-first arguments are read from ADMIN_EMAIL, ADMIN_PASSWORD,
ADMIN_FIRST_NAME and ADMIN_LAST_NAME, then prompted for.
"""
import getpass
import os
import sys
from .models import db, User
from .routes.auth import hash_password
from .routes.utils import log_audit
from .schemas import password_problem, email_problem


class CommandError(Exception):
    pass


def _argument(args, index, env_name, prompt, secret=False, required=True):
    if len(args) > index and args[index]:
        return args[index]
    value = os.getenv(env_name)
    if value:
        return value
    if not sys.stdin.isatty():
        if required:
            raise CommandError(f"Argumento ausente: defina {env_name} ou informe-o na linha de comando")
        return None
    value = getpass.getpass(f"{prompt}: ") if secret else input(f"{prompt}: ")
    return value or None


def create_first_admin(email, password, first_name, last_name=None):
    if User.query.filter_by(role='admin').first() is not None:
        raise CommandError("Já existe um administrador. Use 'promote' para promover outros usuários.")
    if not email or email_problem(email):
        raise CommandError("Email inválido")
    problem = password_problem(password)
    if problem:
        raise CommandError(problem)
    if not first_name:
        raise CommandError("Nome é obrigatório")

    email = email.lower()
    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, first_name=first_name, last_name=last_name)
        db.session.add(user)
    user.password_hash = hash_password(password)
    user.role = 'admin'
    db.session.flush()
    log_audit("CREATE_FIRST_ADMIN", "User", user.id, f"First admin created via CLI: {email}")
    db.session.commit()
    return user


def promote(email):
    if not email:
        raise CommandError("Uso: admin_cli.py promote <email>")
    user = User.query.filter_by(email=email.lower()).first()
    if user is None:
        raise CommandError(f"Usuário não encontrado: {email}")
    user.role = 'admin'
    log_audit("PROMOTE", "User", user.id, f"{user.email} promoted to admin via CLI")
    db.session.commit()
    return user


def list_users():
    return User.query.order_by(User.created_at).all()


def print_help():
    print("CandyCost Admin CLI - comandos disponíveis:")
    print("")
    print("  create-first  - Criar primeiro administrador (apenas se não existir nenhum)")
    print("  promote       - Promover usuário existente a administrador")
    print("  list-users    - Listar todos os usuários do sistema")
    print("  help          - Mostrar esta ajuda")


def run(command, args):
    if command == 'create-first':
        email = _argument(args, 0, 'ADMIN_EMAIL', "Email")
        password = _argument(args, 1, 'ADMIN_PASSWORD', "Senha", secret=True)
        first_name = _argument(args, 2, 'ADMIN_FIRST_NAME', "Nome")
        last_name = _argument(args, 3, 'ADMIN_LAST_NAME', "Sobrenome", required=False)
        user = create_first_admin(email, password, first_name, last_name)
        print("Primeiro administrador criado com sucesso!")
        print(f"   Email: {user.email}")
        print(f"   Nome: {user.first_name} {user.last_name or ''}")
        print(f"   ID: {user.id}")
    elif command == 'promote':
        user = promote(args[0] if args else None)
        print(f"Usuário {user.email} promovido a administrador!")
    elif command == 'list-users':
        users = list_users()
        for index, user in enumerate(users, start=1):
            print(f"{index}. {user.first_name} {user.last_name or ''} <{user.email}> [{user.role}]")
        admins = sum(1 for u in users if u.is_admin)
        print(f"Resumo: {admins} admin(s), {len(users) - admins} usuário(s) comum(ns)")
    elif command in ('help', '--help', '-h'):
        print_help()
    else:
        raise CommandError("Comando não reconhecido. Use 'help' para ver os comandos disponíveis.")


def main(argv=None, app=None):
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        print_help()
        return 1

    if app is None:
        from . import create_app
        app = create_app()

    with app.app_context():
        try:
            run(argv[0], argv[1:])
        except CommandError as e:
            db.session.rollback()
            print(f"Erro: {e}", file=sys.stderr)
            return 1
    return 0

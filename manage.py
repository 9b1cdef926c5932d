#!/usr/bin/env python
"""
Django's command-line utility for administrative tasks.

Sincro Board - Sincronização colaborativa de boards
"""

import os
import sys


def _run(comando):
    print(f"   $ {comando}")
    return os.system(comando)


def setup():
    """Migrações, papéis globais e superusuário inicial"""
    print("🚀 Configurando Sincro Board...")

    # Os models não trazem migrações versionadas; gerar antes de aplicar
    print("📊 Gerando e aplicando migrações...")
    _run('python manage.py makemigrations core')
    if _run('python manage.py migrate') != 0:
        print("❌ Erro nas migrações")
        return

    print("👤 Verificando superusuário...")
    exit_code = _run(
        'python manage.py shell -c "from apps.core.models import User; '
        'User.objects.filter(is_superuser=True).exists() or '
        'User.objects.create_superuser(\'admin\', \'admin@sincro.local\', \'admin123\')"'
    )

    # seed cria os papéis globais e confere owners/ordem dos buckets
    print("🌱 Criando papéis e verificando integridade...")
    if exit_code == 0 and _run('python manage.py seed') == 0:
        print("✅ Setup concluído!")
        print("🔑 Acesse com: admin/admin123")
    else:
        print("⚠️  Setup parcial concluído")


def main():
    """Run administrative tasks."""

    # Configuração padrão para desenvolvimento
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

    try:
        from django.core.management import execute_from_command_line
    except ImportError as exc:
        raise ImportError(
            "Couldn't import Django. Are you sure it's installed and "
            "available on your PYTHONPATH environment variable? Did you "
            "forget to activate a virtual environment?"
        ) from exc

    # Atalhos do Sincro Board
    if len(sys.argv) > 1:
        command = sys.argv[1]

        if command == 'setup':
            setup()
            return

        # Corrige buckets com ordem quebrada (ex.: após import manual)
        if command == 'repair':
            _run('python manage.py seed --fix')
            return

    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()

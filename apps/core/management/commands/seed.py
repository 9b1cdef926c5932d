# apps/core/management/commands/seed.py

from django.core.management.base import BaseCommand
from django.db import connection, transaction
from django.db.models import Count

from apps.board.ordering import Bucket, ordering_engine
from apps.core.models import Project, ProjectMembership, Role, Task


class Command(BaseCommand):
    help = 'Cria os papéis globais e verifica a integridade (owners e ordem das colunas)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--fix',
            action='store_true',
            help='Renumera colunas com buracos ou posições repetidas'
        )

    def handle(self, *args, **options):
        self.stdout.write('🔍 Executando verificação de integridade do sistema...')

        self._testar_conectividade_banco()
        self._criar_papeis()
        sem_owner = self._verificar_owners()
        buckets = self._verificar_ordem(corrigir=options['fix'])

        if sem_owner or (buckets and not options['fix']):
            self.stdout.write(self.style.WARNING(
                f'\n⚠️  Problemas encontrados: {len(sem_owner)} projeto(s) sem owner, '
                f'{len(buckets)} coluna(s) com ordem inconsistente'
            ))
            if buckets and not options['fix']:
                self.stdout.write('💡 Execute: python manage.py seed --fix')
            return

        self.stdout.write(self.style.SUCCESS('\n✅ SISTEMA VERIFICADO E FUNCIONANDO!'))

    def _testar_conectividade_banco(self):
        """Testa conectividade básica"""
        self.stdout.write('  🔗 Testando conectividade do banco...')

        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()

    def _criar_papeis(self):
        self.stdout.write('  👥 Garantindo papéis globais...')

        for name, label in Role.NAME_CHOICES:
            _, criado = Role.objects.get_or_create(name=name, defaults={'description': label})
            if criado:
                self.stdout.write(f'    ✅ Papel criado: {name}')

    def _verificar_owners(self):
        """Projetos com membros e nenhum owner violam o invariante"""
        self.stdout.write('  🛡️  Verificando owners dos projetos...')

        com_membros = set(
            ProjectMembership.objects.values_list('project_id', flat=True).distinct()
        )
        com_owner = set(
            ProjectMembership.objects
            .filter(role=ProjectMembership.Role.OWNER)
            .values_list('project_id', flat=True)
            .distinct()
        )
        sem_owner = sorted(com_membros - com_owner)

        for project_id in sem_owner:
            self.stdout.write(self.style.ERROR(f'    ❌ Projeto {project_id} sem owner'))

        return sem_owner

    def _verificar_ordem(self, corrigir=False):
        """Colunas cujos valores de order não são 0..n-1"""
        self.stdout.write('  🔢 Verificando ordem das colunas...')

        grupos = (
            Task.objects.scoped(include_tombstoned=False)
            .filter(project__in=Project.objects.scoped(include_tombstoned=False))
            .values('project_id', 'status', 'parent_id')
            .annotate(total=Count('id'))
        )

        inconsistentes = []
        for grupo in grupos:
            bucket = Bucket(grupo['project_id'], grupo['status'], grupo['parent_id'])
            orders = list(bucket.tasks().values_list('order', flat=True))
            if orders != list(range(len(orders))):
                inconsistentes.append(bucket)
                self.stdout.write(f'    ⚠️  Coluna {bucket}: {orders}')

        if corrigir:
            for bucket in inconsistentes:
                with transaction.atomic():
                    ordering_engine.store.lock_project(bucket.project_id)
                    ordering_engine.normalize(bucket)
                self.stdout.write(f'    🔧 Coluna {bucket} renumerada')

        return inconsistentes

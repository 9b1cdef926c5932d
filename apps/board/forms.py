# apps/board/forms.py

from django import forms

from apps.core.models import Task


class TaskForm(forms.Form):
    """Criação de tarefa"""

    title = forms.CharField(label='Título', max_length=200)
    description = forms.CharField(label='Descrição', required=False)
    status = forms.ChoiceField(label='Status', choices=Task.Status.choices, required=False)
    priority = forms.ChoiceField(label='Prioridade', choices=Task.Priority.choices, required=False)
    assignee_id = forms.IntegerField(label='Responsável', required=False, min_value=1)
    parent_id = forms.IntegerField(label='Tarefa pai', required=False, min_value=1)
    due_date = forms.DateField(label='Prazo', required=False)
    estimated_hours = forms.DecimalField(
        label='Horas estimadas', required=False, min_value=0, max_digits=6, decimal_places=2
    )

    def clean_status(self):
        return self.cleaned_data.get('status') or Task.Status.TODO

    def clean_priority(self):
        return self.cleaned_data.get('priority') or Task.Priority.MEDIUM


class TaskUpdateForm(forms.Form):
    """
    Atualização parcial: só os campos enviados entram no resultado
    """

    title = forms.CharField(label='Título', max_length=200, required=False)
    description = forms.CharField(label='Descrição', required=False)
    status = forms.ChoiceField(label='Status', choices=Task.Status.choices, required=False)
    priority = forms.ChoiceField(label='Prioridade', choices=Task.Priority.choices, required=False)
    assignee_id = forms.IntegerField(label='Responsável', required=False, min_value=1)
    due_date = forms.DateField(label='Prazo', required=False)
    estimated_hours = forms.DecimalField(
        label='Horas estimadas', required=False, min_value=0, max_digits=6, decimal_places=2
    )
    actual_hours = forms.DecimalField(
        label='Horas reais', required=False, min_value=0, max_digits=6, decimal_places=2
    )

    def clean(self):
        cleaned_data = super().clean()
        enviados = {
            campo: cleaned_data[campo]
            for campo in self.fields
            if campo in self.data and campo in cleaned_data
        }
        for campo in ('title', 'status', 'priority'):
            if campo in enviados and not enviados[campo]:
                raise forms.ValidationError(f'{campo} não pode ficar vazio')
        if not enviados:
            raise forms.ValidationError('Nenhum campo para atualizar')
        return enviados


class ReorderForm(forms.Form):
    """Sequência completa desejada para um bucket após drag-and-drop"""

    status = forms.ChoiceField(label='Status', choices=Task.Status.choices)
    parent_id = forms.IntegerField(label='Tarefa pai', required=False, min_value=1)
    ordered_ids = forms.JSONField(label='Ordem das tarefas', required=False)

    def clean_ordered_ids(self):
        if 'ordered_ids' not in self.data:
            raise forms.ValidationError('Campo obrigatório')
        # Lista vazia é válida (bucket vazio)
        ordered_ids = self.cleaned_data.get('ordered_ids') or []
        if not isinstance(ordered_ids, list):
            raise forms.ValidationError('Lista de ids esperada')
        return ordered_ids

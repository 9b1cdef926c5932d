# apps/core/forms.py

from django import forms
from django.conf import settings

from .models import Project, ProjectMembership


class LoginForm(forms.Form):
    """Formulário de login"""

    username = forms.CharField(label='Usuário ou Email', max_length=150)
    password = forms.CharField(label='Senha', widget=forms.PasswordInput)


class ProjectForm(forms.Form):
    """Criação de projeto"""

    name = forms.CharField(label='Nome', max_length=200)
    description = forms.CharField(label='Descrição', required=False)
    status = forms.ChoiceField(
        label='Status',
        choices=Project.Status.choices,
        required=False
    )

    def clean_status(self):
        return self.cleaned_data.get('status') or Project.Status.PLANNING


class ProjectUpdateForm(forms.Form):
    """
    Atualização parcial: só os campos enviados são alterados
    """

    name = forms.CharField(label='Nome', max_length=200, required=False)
    description = forms.CharField(label='Descrição', required=False)
    status = forms.ChoiceField(label='Status', choices=Project.Status.choices, required=False)

    def clean(self):
        cleaned_data = super().clean()
        enviados = {
            campo: cleaned_data[campo]
            for campo in self.fields
            if campo in self.data and campo in cleaned_data
        }
        if 'name' in enviados and not enviados['name']:
            raise forms.ValidationError('Nome não pode ficar vazio')
        if not enviados:
            raise forms.ValidationError('Nenhum campo para atualizar')
        return enviados


class MemberForm(forms.Form):
    user_id = forms.IntegerField(label='Usuário', min_value=1)
    role = forms.ChoiceField(label='Papel', choices=ProjectMembership.Role.choices)


class CommentForm(forms.Form):
    """Comentário com limite de tamanho configurável"""

    content = forms.CharField(label='Comentário', strip=True)

    def clean_content(self):
        content = self.cleaned_data['content']
        limite = settings.SINCRO_COMMENT_MAX_LENGTH
        if len(content) > limite:
            raise forms.ValidationError(f'Comentário deve ter no máximo {limite} caracteres')
        return content

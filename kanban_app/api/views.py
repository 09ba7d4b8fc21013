import logging
import secrets
from datetime import timedelta
from urllib.parse import urlencode

from django.conf import settings
from django.contrib.auth.models import User
from django.db import transaction
from django.db.models import Case, Count, IntegerField, Q, Value, When
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.tokens import RefreshToken

from kanban_app import access, activity, emails, membership, notifications
from kanban_app.access import Action
from kanban_app.models import (
    Activity, Attachment, Board, Comment, Notification, Profile, Project,
    ProjectMember, Task, VerificationToken,
)
from kanban_app.roles import Role
from .serializers import (
    ActivitySerializer, AttachmentSerializer, BoardSerializer,
    ChangePasswordSerializer, CommentSerializer, EmailSerializer,
    LoginSerializer, MemberInviteSerializer, MemberRoleSerializer,
    MemberSerializer, NotificationSerializer, PasswordResetSerializer,
    ProjectCreateSerializer, ProjectDetailSerializer, ProjectSerializer,
    ProjectUpdateSerializer, RegisterSerializer, TaskCreateSerializer,
    TaskSerializer, TaskUpdateSerializer,
)

logger = logging.getLogger(__name__)


def _delete_with_files(instance, attachments):
    """Delete ``instance`` and the stored files of ``attachments`` together.

    The rows go first; a storage error then rolls them back, so a record is
    never left without its file or a file without its record. Files that are
    already missing are ignored by FileSystemStorage.
    """
    stored = [a.file for a in attachments if a.file.name]
    with transaction.atomic():
        instance.delete()
        for file in stored:
            file.storage.delete(file.name)


class ProjectScopedMixin:
    """Resolves ``project_pk`` from the URL; non-members get a 404."""

    def get_project(self):
        if not hasattr(self, '_project'):
            self._project = get_object_or_404(Project, pk=self.kwargs['project_pk'])
            access.require(self.request.user, self._project, Action.VIEW)
        return self._project

    def require(self, action):
        return access.require(self.request.user, self.get_project(), action)


class ProjectViewSet(viewsets.ModelViewSet):
    http_method_names = ['get', 'post', 'patch', 'delete']

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return ProjectDetailSerializer
        elif self.action == 'create':
            return ProjectCreateSerializer
        elif self.action == 'partial_update':
            return ProjectUpdateSerializer
        return ProjectSerializer

    def get_queryset(self):
        visible = access.visible_projects(self.request.user).values('pk')
        queryset = Project.objects.filter(pk__in=visible).select_related('owner')
        if self.action == 'list':
            queryset = queryset.annotate(
                member_count=Count('members', distinct=True),
                board_count=Count('boards', distinct=True),
                task_count=Count('boards__tasks', distinct=True),
                done_count=Count('boards__tasks', filter=Q(
                    boards__tasks__status=Task.Status.DONE), distinct=True),
            )
        elif self.action == 'retrieve':
            queryset = queryset.prefetch_related(
                'members__user', 'boards__tasks__assignee', 'boards__tasks__created_by')
        return queryset

    def perform_create(self, serializer):
        project = serializer.save()
        activity.record(
            Activity.Type.CREATED, Activity.Entity.PROJECT, project.pk,
            self.request.user, project, details=project.title)
        logger.info("User %s created project %s", self.request.user.pk, project.pk)

    def update(self, request, *args, **kwargs):
        access.require(request.user, self.get_object(), Action.UPDATE_PROJECT)
        return super().update(request, *args, **kwargs)

    def perform_update(self, serializer):
        project = serializer.save()
        activity.record(
            Activity.Type.UPDATED, Activity.Entity.PROJECT, project.pk,
            self.request.user, project)

    def destroy(self, request, *args, **kwargs):
        project = self.get_object()
        access.require(request.user, project, Action.DELETE_PROJECT)
        project_id = project.pk
        _delete_with_files(project, Attachment.objects.filter(task__board__project=project))
        logger.info("User %s deleted project %s", request.user.pk, project_id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['get'])
    def activities(self, request, pk=None):
        project = self.get_object()
        entries = activity.recent(project, request.query_params.get('limit'))
        return Response(ActivitySerializer(entries, many=True).data)


class BoardViewSet(ProjectScopedMixin, viewsets.ModelViewSet):
    serializer_class = BoardSerializer
    http_method_names = ['get', 'post', 'patch', 'delete']

    def get_queryset(self):
        return Board.objects.filter(project=self.get_project())

    def perform_create(self, serializer):
        self.require(Action.MANAGE_BOARDS)
        board = serializer.save(project=self.get_project())
        activity.record(
            Activity.Type.CREATED, Activity.Entity.BOARD, board.pk,
            self.request.user, board.project, details=board.title)

    def perform_update(self, serializer):
        self.require(Action.MANAGE_BOARDS)
        board = serializer.save()
        activity.record(
            Activity.Type.UPDATED, Activity.Entity.BOARD, board.pk,
            self.request.user, board.project, details=board.title)

    def perform_destroy(self, instance):
        self.require(Action.MANAGE_BOARDS)
        board_id, title, project = instance.pk, instance.title, instance.project
        instance.delete()
        activity.record(
            Activity.Type.DELETED, Activity.Entity.BOARD, board_id,
            self.request.user, project, details=title)


class MemberViewSet(ProjectScopedMixin,
                    mixins.ListModelMixin,
                    mixins.CreateModelMixin,
                    mixins.UpdateModelMixin,
                    mixins.DestroyModelMixin,
                    viewsets.GenericViewSet):
    http_method_names = ['get', 'post', 'patch', 'delete']

    def get_serializer_class(self):
        if self.action == 'create':
            return MemberInviteSerializer
        elif self.action == 'partial_update':
            return MemberRoleSerializer
        return MemberSerializer

    def get_queryset(self):
        seniority = Case(
            *[When(role=role, then=Value(-role.rank)) for role in Role],
            output_field=IntegerField(),
        )
        return (
            ProjectMember.objects.filter(project=self.get_project())
            .select_related('user')
            .order_by(seniority, 'joined_at', 'id')
        )

    def create(self, request, *args, **kwargs):
        self.require(Action.INVITE_MEMBER)
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        member = membership.invite(
            self.get_project(), request.user,
            serializer.validated_data['email'], serializer.validated_data['role'])
        return Response(MemberSerializer(member).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        self.require(Action.CHANGE_ROLE)
        member = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        member = membership.change_role(member, request.user, serializer.validated_data['role'])
        return Response(MemberSerializer(member).data, status=status.HTTP_200_OK)

    def destroy(self, request, *args, **kwargs):
        member = self.get_object()
        if member.user_id == request.user.id:
            self.require(Action.LEAVE_PROJECT)
        else:
            self.require(Action.REMOVE_MEMBER)
        membership.remove(member, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


class TaskViewSet(mixins.CreateModelMixin,
                  mixins.RetrieveModelMixin,
                  mixins.UpdateModelMixin,
                  mixins.DestroyModelMixin,
                  viewsets.GenericViewSet):
    serializer_class = TaskSerializer
    http_method_names = ['get', 'post', 'patch', 'delete']

    def get_serializer_class(self):
        if self.action == 'create':
            return TaskCreateSerializer
        elif self.action == 'partial_update':
            return TaskUpdateSerializer
        return TaskSerializer

    def get_queryset(self):
        visible = access.visible_projects(self.request.user).values('pk')
        return Task.objects.filter(board__project__in=visible).select_related(
            'board__project', 'assignee', 'created_by')

    def perform_create(self, serializer):
        task = serializer.save()
        user = self.request.user
        project = task.project
        activity.record(
            Activity.Type.CREATED, Activity.Entity.TASK, task.pk, user, project,
            details=task.title)
        if task.assignee_id:
            self._announce_assignment(task)

    def update(self, request, *args, **kwargs):
        access.require_task_write(request.user, self.get_object(), Action.UPDATE_TASK)
        return super().update(request, *args, **kwargs)

    def perform_update(self, serializer):
        task = serializer.save()
        self._record_changes(task, serializer.changes)

    def perform_destroy(self, instance):
        access.require_task_write(self.request.user, instance, Action.DELETE_TASK)
        task_id, title, project = instance.pk, instance.title, instance.project
        _delete_with_files(instance, instance.attachments.all())
        activity.record(
            Activity.Type.DELETED, Activity.Entity.TASK, task_id,
            self.request.user, project, details=title)

    @action(detail=False, methods=['get'], url_path='assigned-to-me')
    def assigned_to_me(self, request):
        tasks = self.get_queryset().filter(assignee=request.user).prefetch_related('comments')
        serializer = self.get_serializer(tasks, many=True)
        return Response(serializer.data, status=status.HTTP_200_OK)

    def _record_changes(self, task, changes):
        user = self.request.user
        project = task.project
        if 'moved' in changes:
            activity.record(
                Activity.Type.MOVED, Activity.Entity.TASK, task.pk, user, project,
                details=f"to {changes['moved'].title}")
        if changes.get('status') == Task.Status.DONE:
            activity.record(Activity.Type.COMPLETED, Activity.Entity.TASK, task.pk, user, project)
        if 'assignee' in changes:
            if changes['assignee'] is None:
                activity.record(Activity.Type.UNASSIGNED, Activity.Entity.TASK, task.pk, user, project)
            else:
                self._announce_assignment(task)
        updated = list(changes.get('fields', []))
        if 'status' in changes and changes['status'] != Task.Status.DONE and 'moved' not in changes:
            updated.append('status')
        if updated:
            activity.record(
                Activity.Type.UPDATED, Activity.Entity.TASK, task.pk, user, project,
                details=', '.join(updated))

    def _announce_assignment(self, task):
        user = self.request.user
        project = task.project
        activity.record(
            Activity.Type.ASSIGNED, Activity.Entity.TASK, task.pk, user, project,
            details=task.assignee.email)
        if task.assignee_id != user.id:
            notifications.notify(
                task.assignee,
                Notification.Type.TASK_ASSIGNED,
                "Task assigned",
                f"You were assigned to '{task.title}'",
                link=notifications.project_link(project),
            )


class TaskScopedMixin:
    """Resolves ``task_pk`` from the URL; tasks outside the caller's projects 404."""

    def get_task(self):
        if not hasattr(self, '_task'):
            try:
                task = Task.objects.select_related('board__project').get(pk=self.kwargs.get('task_pk'))
            except Task.DoesNotExist:
                raise NotFound("Task not found.")
            access.require(self.request.user, task.project, Action.VIEW, not_found="Task not found.")
            self._task = task
        return self._task


class CommentViewSet(TaskScopedMixin, viewsets.ModelViewSet):
    serializer_class = CommentSerializer
    http_method_names = ['get', 'post', 'patch', 'delete']

    def get_queryset(self):
        return Comment.objects.filter(task=self.get_task()).select_related('author')

    def perform_create(self, serializer):
        task = self.get_task()
        user = self.request.user
        access.require(user, task.project, Action.CREATE_COMMENT, not_found="Task not found.")
        serializer.save(task=task, author=user)
        activity.record(
            Activity.Type.COMMENTED, Activity.Entity.TASK, task.pk, user, task.project)
        if task.assignee_id and task.assignee_id != user.id:
            notifications.notify(
                task.assignee,
                Notification.Type.COMMENT_ADDED,
                "New comment",
                f"New comment on '{task.title}'",
                link=notifications.project_link(task.project),
            )

    def update(self, request, *args, **kwargs):
        access.require_comment_author(request.user, self.get_object(), Action.UPDATE_COMMENT)
        return super().update(request, *args, **kwargs)

    def perform_destroy(self, instance):
        access.require_comment_author(self.request.user, instance, Action.DELETE_COMMENT)
        instance.delete()


class AttachmentViewSet(TaskScopedMixin,
                        mixins.ListModelMixin,
                        mixins.CreateModelMixin,
                        mixins.DestroyModelMixin,
                        viewsets.GenericViewSet):
    serializer_class = AttachmentSerializer
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    def get_queryset(self):
        return Attachment.objects.filter(task=self.get_task())

    def perform_create(self, serializer):
        task = self.get_task()
        user = self.request.user
        access.require(user, task.project, Action.ADD_ATTACHMENT, not_found="Task not found.")
        attachment = serializer.save(task=task)
        activity.record(
            Activity.Type.ATTACHED, Activity.Entity.TASK, task.pk, user, task.project,
            details=attachment.file_name)

    def perform_destroy(self, instance):
        task = self.get_task()
        user = self.request.user
        access.require(user, task.project, Action.DELETE_ATTACHMENT, not_found="Task not found.")
        attachment_id, file_name = instance.pk, instance.file_name
        _delete_with_files(instance, [instance])
        activity.record(
            Activity.Type.DELETED, Activity.Entity.ATTACHMENT, attachment_id, user,
            task.project, details=file_name)


class NotificationViewSet(mixins.ListModelMixin,
                          mixins.UpdateModelMixin,
                          mixins.DestroyModelMixin,
                          viewsets.GenericViewSet):
    serializer_class = NotificationSerializer
    http_method_names = ['get', 'post', 'patch', 'delete']

    def get_queryset(self):
        return Notification.objects.filter(recipient=self.request.user)

    def list(self, request, *args, **kwargs):
        unread_only = request.query_params.get('unread_only', '').lower() in ('1', 'true', 'yes')
        entries = notifications.for_recipient(request.user, unread_only=unread_only)
        return Response(self.get_serializer(entries, many=True).data)

    def partial_update(self, request, *args, **kwargs):
        notification = self.get_object()
        if not notification.read:
            notification.read = True
            notification.save(update_fields=['read'])
        return Response(self.get_serializer(notification).data)

    @action(detail=False, methods=['post'], url_path='mark-all-read')
    def mark_all_read(self, request):
        updated = notifications.mark_all_read(request.user)
        return Response({"updated": updated}, status=status.HTTP_200_OK)


class RegisterViewSet(viewsets.ModelViewSet):
    queryset = User.objects.all()
    serializer_class = RegisterSerializer
    permission_classes = [permissions.AllowAny]
    http_method_names = ['post']


class LoginAPIView(APIView):
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = serializer.validated_data['user']
        refresh = RefreshToken.for_user(user)

        return Response({
            'token': str(refresh.access_token),
            'fullname': user.get_full_name(),
            'email': user.email,
            'user_id': user.id
        }, status=status.HTTP_200_OK)


class EmailCheckAPIView(APIView):

    def get(self, request):
        email = request.query_params.get('email')

        if not email:
            return Response(
                {"detail": "Email address is missing or malformed."},
                status=status.HTTP_400_BAD_REQUEST
            )

        user = User.objects.filter(email__iexact=email).first()
        if user is None:
            raise NotFound("Email not found.")
        return Response({
            "id": user.id,
            "email": user.email,
            "fullname": user.get_full_name() or user.username
        }, status=status.HTTP_200_OK)


def _issue_token(identifier, hours):
    token = secrets.token_hex(32)
    VerificationToken.objects.create(
        identifier=identifier,
        token=token,
        expires=timezone.now() + timedelta(hours=hours),
    )
    return token


def _consume_token(identifier, token, label):
    try:
        stored = VerificationToken.objects.get(identifier=identifier, token=token)
    except VerificationToken.DoesNotExist:
        raise ValidationError({"detail": f"Invalid or expired {label} token."})
    stored.delete()
    if stored.is_expired():
        raise ValidationError({"detail": f"{label.capitalize()} token has expired. Please request a new one."})


def _link(path, **params):
    return f"{settings.TASKFLOW_BASE_URL}{path}?{urlencode(params)}"


class EmailVerificationAPIView(APIView):
    permission_classes = [permissions.AllowAny]
    sent_message = "If the email exists, a verification link has been sent."

    def post(self, request):
        serializer = EmailSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        email = serializer.validated_data['email'].lower()

        user = User.objects.filter(email__iexact=email).first()
        if user is None:
            return Response({"message": self.sent_message})

        profile, _ = Profile.objects.get_or_create(user=user)
        if profile.email_verified_at:
            raise ValidationError({"detail": "Email is already verified."})

        token = _issue_token(email, settings.TASKFLOW['EMAIL_VERIFICATION_TTL_HOURS'])
        url = _link('/auth/verify-email', token=token, email=email)
        subject, html, text = emails.verification_email(user.get_full_name() or "User", url)
        emails.send_email(email, subject, html, text)
        return Response({"message": self.sent_message})

    def get(self, request):
        token = request.query_params.get('token')
        email = request.query_params.get('email', '').lower()
        if not token or not email:
            raise ValidationError({"detail": "Token and email are required."})

        _consume_token(email, token, 'verification')
        user = User.objects.filter(email__iexact=email).first()
        if user is None:
            raise ValidationError({"detail": "Invalid or expired verification token."})
        profile, _ = Profile.objects.get_or_create(user=user)
        profile.email_verified_at = timezone.now()
        profile.save(update_fields=['email_verified_at'])
        return Response({"message": "Email verified successfully!"})


class PasswordResetAPIView(APIView):
    permission_classes = [permissions.AllowAny]
    sent_message = "If the email exists, a password reset link has been sent."

    def post(self, request):
        serializer = EmailSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        email = serializer.validated_data['email'].lower()

        user = User.objects.filter(email__iexact=email).first()
        if user is not None:
            token = _issue_token(f"reset:{email}", settings.TASKFLOW['PASSWORD_RESET_TTL_HOURS'])
            url = _link('/auth/reset-password', token=token, email=email)
            subject, html, text = emails.password_reset_email(user.get_full_name() or "User", url)
            emails.send_email(email, subject, html, text)
        return Response({"message": self.sent_message})

    def patch(self, request):
        serializer = PasswordResetSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        email = serializer.validated_data['email'].lower()

        _consume_token(f"reset:{email}", serializer.validated_data['token'], 'reset')
        user = User.objects.filter(email__iexact=email).first()
        if user is None:
            raise ValidationError({"detail": "Invalid or expired reset token."})
        user.set_password(serializer.validated_data['password'])
        user.save(update_fields=['password'])
        return Response({"message": "Password reset successfully!"})


class ChangePasswordAPIView(APIView):

    def patch(self, request):
        serializer = ChangePasswordSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        request.user.set_password(serializer.validated_data['new_password'])
        request.user.save(update_fields=['password'])
        return Response({"message": "Password changed successfully."})

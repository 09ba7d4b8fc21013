from django.conf import settings
from django.contrib.auth import authenticate
from django.contrib.auth.models import User
from django.db import transaction
from rest_framework import serializers
from rest_framework.exceptions import NotFound
from rest_framework_simplejwt.tokens import RefreshToken

from kanban_app import access
from kanban_app.access import Action
from kanban_app.activity import describe
from kanban_app.models import (
    Activity, Attachment, Board, Comment, Notification, Profile, Project,
    ProjectMember, Task,
)
from kanban_app.roles import Role


class UserBasicSerializer(serializers.ModelSerializer):
    fullname = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'email', 'fullname']

    def get_fullname(self, obj):
        return obj.get_full_name() or obj.username


def _split_fullname(fullname):
    name_parts = fullname.strip().split(' ', 1)
    first_name = name_parts[0]
    last_name = name_parts[1] if len(name_parts) > 1 else ''
    return first_name, last_name


def _token_payload(user):
    token = RefreshToken.for_user(user)
    return {
        'token': str(token.access_token),
        'fullname': user.get_full_name(),
        'email': user.email,
        'user_id': user.id,
    }


class RegisterSerializer(serializers.ModelSerializer):
    fullname = serializers.CharField(write_only=True, min_length=2)
    repeated_password = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['email', 'password', 'repeated_password', 'fullname']
        extra_kwargs = {
            'password': {'write_only': True, 'min_length': 6},
            'email': {'required': True}
        }

    def validate_email(self, value):
        value = value.lower()
        if User.objects.filter(username=value).exists():
            raise serializers.ValidationError("User with this email already exists.")
        return value

    def validate(self, data):
        if data['password'] != data['repeated_password']:
            raise serializers.ValidationError("Passwords do not match.")
        return data

    def create(self, validated_data):
        fullname = validated_data.pop('fullname')
        validated_data.pop('repeated_password')
        first_name, last_name = _split_fullname(fullname)

        with transaction.atomic():
            user = User.objects.create_user(
                username=validated_data['email'],
                email=validated_data['email'],
                password=validated_data['password'],
                first_name=first_name,
                last_name=last_name
            )
            Profile.objects.create(user=user)
        return user

    def to_representation(self, instance):
        return _token_payload(instance)


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)

    def validate(self, data):
        email = data.get('email', '').lower()
        password = data.get('password')

        try:
            user = User.objects.get(email=email)
        except User.DoesNotExist:
            raise serializers.ValidationError('Invalid credentials')

        user = authenticate(username=user.username, password=password)
        if user is None:
            raise serializers.ValidationError('Invalid credentials')

        data['user'] = user
        return data


class EmailSerializer(serializers.Serializer):
    email = serializers.EmailField()


class PasswordResetSerializer(serializers.Serializer):
    token = serializers.CharField()
    email = serializers.EmailField()
    password = serializers.CharField(min_length=6, write_only=True)


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(min_length=6, write_only=True)

    def validate_current_password(self, value):
        user = self.context['request'].user
        if not user.has_usable_password():
            raise serializers.ValidationError("Password not set for this account.")
        if not user.check_password(value):
            raise serializers.ValidationError("Current password is incorrect.")
        return value


class BoardSerializer(serializers.ModelSerializer):
    class Meta:
        model = Board
        fields = ['id', 'title', 'position', 'project']
        read_only_fields = ['project']
        extra_kwargs = {'position': {'required': False}}

    def create(self, validated_data):
        project = validated_data['project']
        if 'position' not in validated_data:
            last = project.boards.order_by('-position').first()
            validated_data['position'] = last.position + 1 if last else 0
        return super().create(validated_data)


class TaskSerializer(serializers.ModelSerializer):
    assignee = UserBasicSerializer(read_only=True)
    created_by = UserBasicSerializer(read_only=True)
    project = serializers.IntegerField(source='board.project_id', read_only=True)
    comments_count = serializers.IntegerField(source='comments.count', read_only=True)

    class Meta:
        model = Task
        fields = [
            'id', 'title', 'description', 'status', 'priority', 'position',
            'board', 'project', 'assignee', 'created_by', 'due_date',
            'completed_at', 'comments_count', 'created_at', 'updated_at'
        ]


class BoardDetailSerializer(serializers.ModelSerializer):
    tasks = TaskSerializer(many=True, read_only=True)

    class Meta:
        model = Board
        fields = ['id', 'title', 'position', 'tasks']


class MemberSerializer(serializers.ModelSerializer):
    user = UserBasicSerializer(read_only=True)

    class Meta:
        model = ProjectMember
        fields = ['id', 'user', 'role', 'joined_at']


class MemberInviteSerializer(serializers.Serializer):
    email = serializers.EmailField()
    role = serializers.ChoiceField(choices=Role.choices, default=Role.MEMBER)

    def validate_email(self, value):
        user = User.objects.filter(email__iexact=value).order_by('id').first()
        if user is None:
            raise serializers.ValidationError("User not found.")
        return user


class MemberRoleSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=Role.choices)


class ProjectSerializer(serializers.ModelSerializer):
    owner = UserBasicSerializer(read_only=True)
    member_count = serializers.IntegerField(read_only=True)
    board_count = serializers.IntegerField(read_only=True)
    task_count = serializers.IntegerField(read_only=True)
    done_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Project
        fields = [
            'id', 'title', 'description', 'color', 'owner', 'member_count',
            'board_count', 'task_count', 'done_count', 'created_at', 'updated_at'
        ]


class ProjectDetailSerializer(serializers.ModelSerializer):
    owner = UserBasicSerializer(read_only=True)
    members = MemberSerializer(many=True, read_only=True)
    boards = BoardDetailSerializer(many=True, read_only=True)
    role = serializers.SerializerMethodField()

    class Meta:
        model = Project
        fields = [
            'id', 'title', 'description', 'color', 'owner', 'role', 'members',
            'boards', 'created_at', 'updated_at'
        ]

    def get_role(self, obj):
        request = self.context.get('request')
        role = access.resolve_role(getattr(request, 'user', None), obj)
        return role.value if role else None


class ProjectCreateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Project
        fields = ['id', 'title', 'description', 'color']
        extra_kwargs = {'description': {'required': False}, 'color': {'required': False}}

    def create(self, validated_data):
        user = self.context['request'].user
        with transaction.atomic():
            project = Project.objects.create(owner=user, **validated_data)
            ProjectMember.objects.create(project=project, user=user, role=Role.OWNER)
            Board.objects.bulk_create([
                Board(project=project, title=title, position=position)
                for position, title in enumerate(settings.TASKFLOW['DEFAULT_BOARDS'])
            ])
        return project

    def to_representation(self, instance):
        return ProjectDetailSerializer(instance, context=self.context).data


class ProjectUpdateSerializer(serializers.ModelSerializer):
    title = serializers.CharField(required=False)

    class Meta:
        model = Project
        fields = ['title', 'description', 'color']

    def to_representation(self, instance):
        return ProjectDetailSerializer(instance, context=self.context).data


def _validate_assignee(assignee_id, project):
    if assignee_id is None:
        return None
    try:
        assignee = User.objects.get(id=assignee_id)
    except User.DoesNotExist:
        raise serializers.ValidationError({'assignee_id': "User does not exist."})
    if not access.resolve_role(assignee, project):
        raise serializers.ValidationError({'assignee_id': "User is not a member of the project."})
    return assignee


class BoardLookupField(serializers.PrimaryKeyRelatedField):
    """Unknown boards answer 404, same as boards of a project the caller is not in."""

    def to_internal_value(self, data):
        try:
            return self.get_queryset().get(pk=data)
        except (Board.DoesNotExist, TypeError, ValueError):
            raise NotFound("Board not found.")


class TaskCreateSerializer(serializers.ModelSerializer):
    board = BoardLookupField(queryset=Board.objects.select_related('project'))
    assignee_id = serializers.IntegerField(required=False, allow_null=True)

    class Meta:
        model = Task
        fields = [
            'board',
            'title',
            'description',
            'priority',
            'assignee_id',
            'due_date'
        ]

    def validate(self, data):
        user = self.context['request'].user
        board = data['board']
        access.require(user, board.project, Action.CREATE_TASK, not_found="Board not found.")
        data['assignee'] = _validate_assignee(data.pop('assignee_id', None), board.project)
        return data

    def create(self, validated_data):
        board = validated_data['board']
        with transaction.atomic():
            return Task.objects.create(
                created_by=self.context['request'].user,
                position=board.next_task_position(),
                **validated_data
            )

    def to_representation(self, instance):
        return TaskSerializer(instance, context=self.context).data


class TaskUpdateSerializer(serializers.ModelSerializer):
    assignee_id = serializers.IntegerField(required=False, allow_null=True)

    class Meta:
        model = Task
        fields = [
            'title',
            'description',
            'board',
            'status',
            'priority',
            'assignee_id',
            'due_date',
            'position'
        ]

    def validate_board(self, board):
        if board.project_id != self.instance.board.project_id:
            raise serializers.ValidationError("Board belongs to a different project.")
        return board

    def validate(self, attrs):
        if 'assignee_id' in attrs:
            attrs['assignee'] = _validate_assignee(attrs.pop('assignee_id'), self.instance.project)
        return attrs

    def update(self, instance, validated_data):
        self.changes = changes = {}
        with transaction.atomic():
            # completed_at follows the persisted status, not the caller's copy.
            instance.status = (
                Task.objects.select_for_update()
                .values_list('status', flat=True)
                .get(pk=instance.pk)
            )
            status = validated_data.pop('status', None)
            board = validated_data.pop('board', None)

            if board is not None and board.pk != instance.board_id:
                instance.board = board
                if 'position' not in validated_data:
                    instance.position = board.next_task_position()
                if status is None:
                    status = board.inferred_status()
                changes['moved'] = board

            if 'assignee' in validated_data:
                assignee = validated_data.pop('assignee')
                if (assignee and assignee.id) != instance.assignee_id:
                    instance.assignee = assignee
                    changes['assignee'] = assignee

            if status is not None and instance.apply_status(status):
                changes['status'] = status

            for attr, value in validated_data.items():
                if getattr(instance, attr) != value:
                    setattr(instance, attr, value)
                    changes.setdefault('fields', []).append(attr)

            instance.save()
        return instance

    def to_representation(self, instance):
        return TaskSerializer(instance, context=self.context).data


class CommentSerializer(serializers.ModelSerializer):
    author = UserBasicSerializer(read_only=True)

    class Meta:
        model = Comment
        fields = ['id', 'created_at', 'updated_at', 'author', 'content']

    def validate_content(self, value):
        if not value.strip():
            raise serializers.ValidationError("Comment content is required.")
        return value


class AttachmentSerializer(serializers.ModelSerializer):
    file = serializers.FileField(write_only=True)
    file_url = serializers.CharField(read_only=True)

    class Meta:
        model = Attachment
        fields = ['id', 'file', 'file_name', 'file_url', 'file_size', 'file_type', 'task', 'created_at']
        read_only_fields = ['file_name', 'file_size', 'file_type', 'task']

    def create(self, validated_data):
        upload = validated_data['file']
        validated_data['file_name'] = upload.name
        validated_data['file_size'] = upload.size
        validated_data['file_type'] = getattr(upload, 'content_type', None) or 'application/octet-stream'
        return super().create(validated_data)


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'type', 'title', 'message', 'read', 'link', 'created_at']
        read_only_fields = ['type', 'title', 'message', 'link', 'created_at']


class ActivitySerializer(serializers.ModelSerializer):
    actor = UserBasicSerializer(read_only=True)
    message = serializers.SerializerMethodField()

    class Meta:
        model = Activity
        fields = ['id', 'type', 'entity', 'entity_id', 'actor', 'project', 'details', 'message', 'created_at']

    def get_message(self, obj):
        return describe(obj)

from django.conf import settings
from django.contrib.auth.models import User
from django.db import models
from django.db.models import Max
from django.utils import timezone

from kanban_app.roles import Role


class Profile(models.Model):
    user = models.OneToOneField(User, related_name='profile', on_delete=models.CASCADE)
    email_verified_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"Profile of {self.user.email}"


class VerificationToken(models.Model):
    identifier = models.CharField(max_length=255)
    token = models.CharField(max_length=64)
    expires = models.DateTimeField()

    class Meta:
        unique_together = ('identifier', 'token')

    def is_expired(self):
        return self.expires < timezone.now()


class Project(models.Model):
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    color = models.CharField(max_length=20, blank=True)
    owner = models.ForeignKey(User, related_name='owned_projects', on_delete=models.CASCADE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-updated_at']

    def __str__(self):
        return self.title

    def save(self, *args, **kwargs):
        if not self.color:
            self.color = settings.TASKFLOW['DEFAULT_PROJECT_COLOR']
        super().save(*args, **kwargs)


class ProjectMember(models.Model):
    project = models.ForeignKey(Project, related_name='members', on_delete=models.CASCADE)
    user = models.ForeignKey(User, related_name='memberships', on_delete=models.CASCADE)
    role = models.CharField(max_length=10, choices=Role.choices, default=Role.MEMBER)
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('project', 'user')

    def __str__(self):
        return f"{self.user.email} ({self.role}) in {self.project.title}"


class Board(models.Model):
    title = models.CharField(max_length=255)
    position = models.IntegerField(default=0)
    project = models.ForeignKey(Project, related_name='boards', on_delete=models.CASCADE)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['position', 'id']

    def __str__(self):
        return self.title

    def inferred_status(self):
        """Map the board title onto a task status, or None when nothing matches.

        This is a naming heuristic: a board called "Done deals" maps to done,
        a board called "Backlog" maps to nothing.
        """
        title = self.title.lower()
        if 'to do' in title or 'todo' in title:
            return Task.Status.TODO
        if 'progress' in title:
            return Task.Status.IN_PROGRESS
        if 'done' in title:
            return Task.Status.DONE
        return None

    def next_task_position(self):
        highest = self.tasks.aggregate(highest=Max('position'))['highest']
        return (highest or 0) + 1


class Task(models.Model):
    class Priority(models.TextChoices):
        LOW = 'low', 'Low'
        MEDIUM = 'medium', 'Medium'
        HIGH = 'high', 'High'
        URGENT = 'urgent', 'Urgent'

    class Status(models.TextChoices):
        TODO = 'todo', 'To Do'
        IN_PROGRESS = 'in_progress', 'In Progress'
        DONE = 'done', 'Done'

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.MEDIUM)
    status = models.CharField(max_length=15, choices=Status.choices, default=Status.TODO)
    due_date = models.DateTimeField(null=True, blank=True)
    position = models.IntegerField(default=0)
    completed_at = models.DateTimeField(null=True, blank=True)

    board = models.ForeignKey(Board, related_name='tasks', on_delete=models.CASCADE)
    assignee = models.ForeignKey(User, related_name='assigned_tasks', null=True, blank=True, on_delete=models.SET_NULL)
    created_by = models.ForeignKey(User, related_name='created_tasks', on_delete=models.CASCADE)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['position', 'id']

    def __str__(self):
        return self.title

    @property
    def project(self):
        return self.board.project

    def apply_status(self, new_status):
        """Set the status and keep completed_at in step with it.

        Compared against the status currently held by the instance (the
        persisted one, as long as nothing else touched it), so re-sending the
        same status leaves completed_at alone.
        """
        if new_status == self.status:
            return False
        if new_status == self.Status.DONE:
            self.completed_at = timezone.now()
        elif self.status == self.Status.DONE:
            self.completed_at = None
        self.status = new_status
        return True

    def is_touchable_by(self, user):
        return user.id in (self.created_by_id, self.assignee_id)


class Comment(models.Model):
    task = models.ForeignKey(Task, related_name='comments', on_delete=models.CASCADE)
    author = models.ForeignKey(User, related_name='comments', on_delete=models.CASCADE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    content = models.TextField()

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"Comment by {self.author.username} on {self.task.title}"


def attachment_upload_to(instance, filename):
    stamp = timezone.now().strftime('%Y%m%d%H%M%S%f')
    return f"{settings.TASKFLOW['ATTACHMENT_UPLOAD_DIR']}/{stamp}-{filename}"


class Attachment(models.Model):
    task = models.ForeignKey(Task, related_name='attachments', on_delete=models.CASCADE)
    file = models.FileField(upload_to=attachment_upload_to, max_length=500)
    file_name = models.CharField(max_length=255)
    file_size = models.PositiveBigIntegerField(default=0)
    file_type = models.CharField(max_length=255, default='application/octet-stream')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return self.file_name

    @property
    def file_url(self):
        return self.file.url if self.file else None


class Notification(models.Model):
    class Type(models.TextChoices):
        TEAM_INVITE = 'TEAM_INVITE', 'Team invite'
        ROLE_CHANGED = 'ROLE_CHANGED', 'Role changed'
        TASK_ASSIGNED = 'TASK_ASSIGNED', 'Task assigned'
        COMMENT_ADDED = 'COMMENT_ADDED', 'Comment added'

    type = models.CharField(max_length=20, choices=Type.choices)
    title = models.CharField(max_length=255)
    message = models.TextField()
    recipient = models.ForeignKey(User, related_name='notifications', on_delete=models.CASCADE)
    read = models.BooleanField(default=False)
    link = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.type} for {self.recipient.email}"


class ImmutableRecordError(Exception):
    pass


class Activity(models.Model):
    class Type(models.TextChoices):
        CREATED = 'created', 'Created'
        UPDATED = 'updated', 'Updated'
        DELETED = 'deleted', 'Deleted'
        MOVED = 'moved', 'Moved'
        ASSIGNED = 'assigned', 'Assigned'
        UNASSIGNED = 'unassigned', 'Unassigned'
        COMPLETED = 'completed', 'Completed'
        COMMENTED = 'commented', 'Commented'
        ATTACHED = 'attached', 'Attached'
        MEMBER_ADDED = 'member_added', 'Member added'
        MEMBER_REMOVED = 'member_removed', 'Member removed'
        ROLE_CHANGED = 'role_changed', 'Role changed'

    class Entity(models.TextChoices):
        PROJECT = 'project', 'Project'
        BOARD = 'board', 'Board'
        TASK = 'task', 'Task'
        COMMENT = 'comment', 'Comment'
        ATTACHMENT = 'attachment', 'Attachment'

    type = models.CharField(max_length=20, choices=Type.choices)
    entity = models.CharField(max_length=20, choices=Entity.choices)
    entity_id = models.CharField(max_length=64)
    actor = models.ForeignKey(User, related_name='activities', on_delete=models.CASCADE)
    project = models.ForeignKey(Project, related_name='activities', on_delete=models.CASCADE)
    details = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']
        verbose_name_plural = 'activities'

    def __str__(self):
        return f"{self.type} {self.entity} #{self.entity_id}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ImmutableRecordError("Activity entries cannot be changed once written.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError("Activity entries cannot be deleted.")

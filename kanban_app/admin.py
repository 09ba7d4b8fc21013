from django.contrib import admin

from kanban_app.models import (
    Activity, Attachment, Board, Comment, Notification, Profile, Project,
    ProjectMember, Task,
)


class ProjectMemberInline(admin.TabularInline):
    model = ProjectMember
    extra = 0


class BoardInline(admin.TabularInline):
    model = Board
    extra = 0


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ['title', 'owner', 'created_at']
    inlines = [ProjectMemberInline, BoardInline]


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    list_display = ['title', 'board', 'status', 'priority', 'assignee', 'completed_at']
    list_filter = ['status', 'priority']


@admin.register(Activity)
class ActivityAdmin(admin.ModelAdmin):
    list_display = ['type', 'entity', 'entity_id', 'actor', 'project', 'created_at']

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


admin.site.register([Profile, Comment, Attachment, Notification])

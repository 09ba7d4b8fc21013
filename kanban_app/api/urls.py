from django.urls import path
from rest_framework.routers import DefaultRouter
from rest_framework_nested.routers import NestedDefaultRouter

from kanban_app.api import views

urlpatterns = [
    path('login/', views.LoginAPIView.as_view(), name='login'),
    path('email-check/', views.EmailCheckAPIView.as_view(), name='email-check'),
    path('auth/verify-email/', views.EmailVerificationAPIView.as_view(), name='verify-email'),
    path('auth/reset-password/', views.PasswordResetAPIView.as_view(), name='reset-password'),
    path('profile/password/', views.ChangePasswordAPIView.as_view(), name='change-password'),
]

router = DefaultRouter()
router.register(r'projects', views.ProjectViewSet, basename='projects')
router.register(r'tasks', views.TaskViewSet, basename='tasks')
router.register(r'notifications', views.NotificationViewSet, basename='notifications')
router.register(r'register', views.RegisterViewSet, basename='register')

projects_router = NestedDefaultRouter(router, r'projects', lookup='project')
projects_router.register(r'boards', views.BoardViewSet, basename='project-boards')
projects_router.register(r'members', views.MemberViewSet, basename='project-members')

tasks_router = NestedDefaultRouter(router, r'tasks', lookup='task')
tasks_router.register(r'comments', views.CommentViewSet, basename='task-comments')
tasks_router.register(r'attachments', views.AttachmentViewSet, basename='task-attachments')

urlpatterns += router.urls + projects_router.urls + tasks_router.urls

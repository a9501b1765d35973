import logging

from rest_framework import generics
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAdminUser
from .models import PlatformSetting, AuditLog
from .serializers import PlatformSettingSerializer, AuditLogSerializer

logger = logging.getLogger(__name__)


class PlatformSettingView(APIView):
    """Platform-wide exam policy: shuffling, retakes, result visibility."""
    permission_classes = [IsAdminUser]

    def get(self, request):
        serializer = PlatformSettingSerializer(PlatformSetting.load())
        return Response(serializer.data)

    def put(self, request):
        platform = PlatformSetting.load()
        serializer = PlatformSettingSerializer(platform, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()

        changed = ', '.join(sorted(serializer.validated_data)) or 'nothing'
        AuditLog.objects.create(
            actor=request.user,
            action='SETTINGS',
            target_model='PlatformSetting',
            target_object_id='1',
            details=f"Updated platform settings: {changed}",
        )
        logger.info("Platform settings updated by %s: %s", request.user.pk, changed)
        return Response(serializer.data)

    patch = put


class AuditLogListView(generics.ListAPIView):
    # Select related avoids N+1 queries when fetching users
    queryset = AuditLog.objects.select_related('actor').all().order_by('-timestamp')
    serializer_class = AuditLogSerializer
    permission_classes = [IsAdminUser]

    def get_queryset(self):
        queryset = super().get_queryset()
        action = self.request.query_params.get('action')
        if action:
            queryset = queryset.filter(action=action)
        target = self.request.query_params.get('target_model')
        if target:
            queryset = queryset.filter(target_model=target)
        return queryset

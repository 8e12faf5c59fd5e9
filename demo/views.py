import logging
from functools import partial
from django.db import transaction
from rest_framework.views import APIView
from auth_core.responses import success, validation_failure
from auth_core.throttling import DemoRequestRateThrottle
from auth_core.views import PublicViewMixin
from usage.middleware import get_client_ip
from .serializers import DemoRequestSerializer
from .tasks import notify_demo_request

logger = logging.getLogger(__name__)


class DemoRequestView(PublicViewMixin, APIView):
    """
    POST /api/v1/request-demo
    Public lead form. The lead is stored and forwarded to sales by email.
    """
    throttle_classes = [DemoRequestRateThrottle]

    def post(self, request):
        serializer = DemoRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_failure(serializer)

        lead = serializer.save(ip_address=get_client_ip(request))
        transaction.on_commit(partial(notify_demo_request.delay, lead.pk))
        logger.info("Demo request %s received from %s", lead.pk, lead.email)
        return success({'message': 'Demo request received'})

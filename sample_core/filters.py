# sample_core/filters.py
import django_filters as df

from .models import AuditLog, Sample, SampleIdChangeRequest


class SampleFilter(df.FilterSet):
    request_status = df.CharFilter(field_name="request_status", lookup_expr="iexact")
    lab_sample_code = df.CharFilter(field_name="lab_sample_code", lookup_expr="icontains")
    sample_type = df.CharFilter(field_name="sample_type", lookup_expr="icontains")
    workflow_group = df.CharFilter(field_name="workflow_group", lookup_expr="iexact")
    client = df.NumberFilter(field_name="client_id")
    batch = df.NumberFilter(field_name="batch_id")
    verified = df.BooleanFilter(field_name="verified_at", lookup_expr="isnull", exclude=True)
    created_at = df.DateFromToRangeFilter()

    class Meta:
        model = Sample
        fields = [
            "request_status",
            "lab_sample_code",
            "sample_type",
            "workflow_group",
            "client",
            "batch",
            "crosscheck_status",
            "verified",
            "created_at",
        ]


class ChangeRequestFilter(df.FilterSet):
    status = df.CharFilter(field_name="status", lookup_expr="iexact")
    sample = df.NumberFilter(field_name="sample_id")

    class Meta:
        model = SampleIdChangeRequest
        fields = ["status", "sample"]


class AuditLogFilter(df.FilterSet):
    action = df.CharFilter(field_name="action", lookup_expr="istartswith")
    entity_name = df.CharFilter(field_name="entity_name")
    entity_id = df.CharFilter(field_name="entity_id")

    class Meta:
        model = AuditLog
        fields = ["action", "entity_name", "entity_id", "actor"]

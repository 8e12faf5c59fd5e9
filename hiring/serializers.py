from rest_framework import serializers
from .models import Candidate, CandidateStatus, HiringRequest, HiringRequestStatus


def _invalid_status(choices):
    return f"Invalid status. Must be one of: {', '.join(choices.values)}"


class CandidateSerializer(serializers.ModelSerializer):
    hiring_request_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Candidate
        fields = ["id", "hiring_request_id", "name", "email", "match_score", "status", "created_at", "updated_at"]


class HiringRequestSerializer(serializers.ModelSerializer):
    candidate_count = serializers.SerializerMethodField()

    class Meta:
        model = HiringRequest
        fields = [
            "id", "title", "requirements", "job_description", "webhook_url", "status",
            "candidate_count", "created_at", "updated_at",
        ]

    def get_candidate_count(self, obj):
        # annotated on list queries
        count = getattr(obj, "candidate_count", None)
        return obj.candidates.count() if count is None else count


class HiringRequestDetailSerializer(HiringRequestSerializer):
    candidates = CandidateSerializer(many=True, read_only=True)

    class Meta(HiringRequestSerializer.Meta):
        fields = HiringRequestSerializer.Meta.fields + ["candidates"]


class HiringRequestWriteSerializer(serializers.ModelSerializer):
    title = serializers.CharField(required=False, allow_blank=True, max_length=255)
    requirements = serializers.CharField(required=False, allow_blank=True)
    status = serializers.CharField(required=False)

    class Meta:
        model = HiringRequest
        fields = ["title", "requirements", "job_description", "webhook_url", "status"]
        extra_kwargs = {
            "job_description": {"required": False, "allow_null": True, "allow_blank": True},
            "webhook_url": {"required": False, "allow_null": True, "allow_blank": True},
        }

    def validate(self, attrs):
        if self.instance is None:
            if not attrs.get("title", "").strip() or not attrs.get("requirements", "").strip():
                raise serializers.ValidationError("Title and requirements are required")
        else:
            for field in ("title", "requirements"):
                if field in attrs and not attrs[field].strip():
                    raise serializers.ValidationError(f"{field.capitalize()} cannot be empty")

        if "status" in attrs and attrs["status"] not in HiringRequestStatus.values:
            raise serializers.ValidationError(_invalid_status(HiringRequestStatus))
        if attrs.get("webhook_url") == "":
            attrs["webhook_url"] = None
        return attrs


class CandidateStatusSerializer(serializers.Serializer):
    status = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs.get("status") not in CandidateStatus.values:
            raise serializers.ValidationError(_invalid_status(CandidateStatus))
        return attrs

from rest_framework import serializers
from apps.users.serializers import UserSummarySerializer
from .models import Job, Bid, JobStatusLog, JobAttachment, Revision, Rating, JobMessage


class JobAttachmentSerializer(serializers.ModelSerializer):
    uploaded_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = JobAttachment
        fields = [
            'id', 'job', 'uploaded_by', 'file', 'file_name', 'file_size', 'file_type',
            'upload_type', 'scheduled_deletion_at', 'deleted_at', 'created_at'
        ]
        read_only_fields = [
            'job', 'file_name', 'file_size', 'file_type', 'scheduled_deletion_at', 'deleted_at', 'created_at'
        ]

    def create(self, validated_data):
        upload = validated_data['file']
        validated_data['file_name'] = upload.name
        validated_data['file_size'] = upload.size
        validated_data['file_type'] = getattr(upload, 'content_type', '') or ''
        return super().create(validated_data)


class JobSerializer(serializers.ModelSerializer):
    client = UserSummarySerializer(read_only=True)
    assigned_freelancer = UserSummarySerializer(read_only=True)
    manager = UserSummarySerializer(read_only=True)
    bid_count = serializers.SerializerMethodField()

    class Meta:
        model = Job
        fields = [
            'id', 'display_id', 'order_number', 'client', 'assigned_freelancer', 'manager',
            'title', 'instructions', 'work_type', 'pages', 'slides', 'amount',
            'urgency_multiplier', 'calculated_price', 'deadline', 'actual_deadline',
            'freelancer_deadline', 'request_draft', 'request_printable_sources', 'single_spaced',
            'status', 'admin_approved', 'client_approved', 'approved_by_client_at',
            'revision_requested', 'revision_notes', 'payment_confirmed', 'paid_order_confirmed_at',
            'freelancer_earnings', 'manager_earnings', 'admin_profit', 'client_rating',
            'writer_rating', 'review_comment', 'bid_count', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_bid_count(self, obj):
        return obj.bids.count()


class JobCreateSerializer(serializers.ModelSerializer):
    pages = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    slides = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    order_number = serializers.CharField(max_length=20, required=False, allow_blank=True)

    class Meta:
        model = Job
        fields = [
            'title', 'instructions', 'work_type', 'pages', 'slides', 'amount', 'deadline',
            'actual_deadline', 'freelancer_deadline', 'request_draft',
            'request_printable_sources', 'single_spaced', 'order_number'
        ]

    def validate_title(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Title is required.")
        return value

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be greater than zero.")
        return value


class JobUpdateSerializer(serializers.ModelSerializer):
    pages = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    slides = serializers.IntegerField(min_value=0, required=False, allow_null=True)

    class Meta:
        model = Job
        fields = [
            'title', 'instructions', 'work_type', 'pages', 'slides', 'deadline',
            'request_draft', 'request_printable_sources', 'single_spaced'
        ]

    def validate(self, data):
        if self.instance.status != 'pending':
            raise serializers.ValidationError("Only pending jobs can be edited.")
        return data


class JobStatusUpdateSerializer(serializers.Serializer):
    status = serializers.CharField()
    note = serializers.CharField(required=False, allow_blank=True)
    revision_requested = serializers.BooleanField(required=False)
    revision_notes = serializers.CharField(required=False, allow_blank=True)
    client_approved = serializers.BooleanField(required=False)


class JobStatusLogSerializer(serializers.ModelSerializer):
    changed_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = JobStatusLog
        fields = ['id', 'job', 'old_status', 'new_status', 'changed_by', 'note', 'created_at']


class BidSerializer(serializers.ModelSerializer):
    freelancer = UserSummarySerializer(read_only=True)
    job_display_id = serializers.CharField(source='job.display_id', read_only=True)
    bid_amount = serializers.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        model = Bid
        fields = ['id', 'job', 'job_display_id', 'freelancer', 'message', 'bid_amount', 'status', 'created_at']
        read_only_fields = ['job', 'status', 'created_at']

    def validate_bid_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Bid amount must be greater than zero.")
        return value

    def validate_message(self, value):
        return value.strip()

    def validate(self, data):
        job = self.context.get('job')
        if job is not None and not job.is_open_for_bids:
            raise serializers.ValidationError("This job is not open for bids.")
        return data


class BidUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Bid
        fields = ['message']

    def validate_message(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Message cannot be empty.")
        return value

    def validate(self, data):
        if self.instance.status != 'pending':
            raise serializers.ValidationError("Only pending bids can be edited.")
        return data


class RevisionSerializer(serializers.ModelSerializer):
    requested_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = Revision
        fields = ['id', 'job', 'requested_by', 'notes', 'status', 'sent_to_freelancer', 'sent_at', 'created_at']
        read_only_fields = ['job', 'status', 'sent_to_freelancer', 'sent_at', 'created_at']


class RatingSerializer(serializers.ModelSerializer):
    rated_user = UserSummarySerializer(read_only=True)
    rated_by = UserSummarySerializer(read_only=True)
    score = serializers.IntegerField(min_value=1, max_value=5)

    class Meta:
        model = Rating
        fields = ['id', 'job', 'rated_user', 'rated_by', 'score', 'comment', 'created_at']
        read_only_fields = ['job', 'created_at']

    def validate(self, data):
        job = self.context['job']
        rater = self.context['request'].user
        if job.status not in ('delivered', 'approved', 'paid', 'completed'):
            raise serializers.ValidationError("Jobs can only be rated once the work has been delivered.")
        if rater.pk == job.client_id:
            if job.assigned_freelancer_id is None:
                raise serializers.ValidationError("This job has no freelancer to rate.")
            data['rated_user'] = job.assigned_freelancer
        elif rater.pk == job.assigned_freelancer_id:
            data['rated_user'] = job.client
        else:
            raise serializers.ValidationError("Only the client or the assigned freelancer can rate this job.")
        if Rating.objects.filter(job=job, rated_by=rater).exists():
            raise serializers.ValidationError("You have already rated this job.")
        return data

    def create(self, validated_data):
        return Rating.objects.create(
            job=self.context['job'],
            rated_by=self.context['request'].user,
            rated_user=validated_data['rated_user'],
            score=validated_data['score'],
            comment=validated_data.get('comment', '')
        )


class JobMessageSerializer(serializers.ModelSerializer):
    sender = UserSummarySerializer(read_only=True)

    class Meta:
        model = JobMessage
        fields = ['id', 'job', 'sender', 'message', 'admin_approved', 'created_at']
        read_only_fields = ['job', 'admin_approved', 'created_at']

    def validate_message(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Message cannot be empty.")
        return value

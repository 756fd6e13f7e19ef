from django.urls import path
from .views import (
    JobListCreateView, JobDetailView, JobStatusUpdateView, JobStatusHistoryView,
    JobAcceptView, JobAssignView, JobStartView, JobSubmitView, JobDeliverView,
    JobApproveView, JobRequestRevisionView, JobCancelView, JobHoldView,
    JobBidsView, BidListView, BidDetailView, JobAttachmentListView, JobAttachmentDetailView,
    JobRevisionListView, RevisionSendView, JobRateView, JobMessageListView, JobMessageApproveView
)

urlpatterns = [
    path('', JobListCreateView.as_view(), name='job_list_create'),
    path('<int:pk>/', JobDetailView.as_view(), name='job_detail'),
    path('<int:pk>/status/', JobStatusUpdateView.as_view(), name='job_status_update'),
    path('<int:pk>/history/', JobStatusHistoryView.as_view(), name='job_status_history'),

    # Workflow
    path('<int:pk>/accept/', JobAcceptView.as_view(), name='job_accept'),
    path('<int:pk>/assign/', JobAssignView.as_view(), name='job_assign'),
    path('<int:pk>/start/', JobStartView.as_view(), name='job_start'),
    path('<int:pk>/submit/', JobSubmitView.as_view(), name='job_submit'),
    path('<int:pk>/deliver/', JobDeliverView.as_view(), name='job_deliver'),
    path('<int:pk>/approve/', JobApproveView.as_view(), name='job_approve'),
    path('<int:pk>/request-revision/', JobRequestRevisionView.as_view(), name='job_request_revision'),
    path('<int:pk>/cancel/', JobCancelView.as_view(), name='job_cancel'),
    path('<int:pk>/hold/', JobHoldView.as_view(), name='job_hold'),

    # Bids
    path('<int:pk>/bids/', JobBidsView.as_view(), name='job_bids'),
    path('bids/', BidListView.as_view(), name='bid_list'),
    path('bids/<int:bid_id>/', BidDetailView.as_view(), name='bid_detail'),

    # Files
    path('<int:pk>/attachments/', JobAttachmentListView.as_view(), name='job_attachments'),
    path('attachments/<int:attachment_id>/', JobAttachmentDetailView.as_view(), name='attachment_detail'),

    # Revisions, ratings and messages
    path('<int:pk>/revisions/', JobRevisionListView.as_view(), name='job_revisions'),
    path('revisions/<int:revision_id>/send/', RevisionSendView.as_view(), name='revision_send'),
    path('<int:pk>/rate/', JobRateView.as_view(), name='job_rate'),
    path('<int:pk>/messages/', JobMessageListView.as_view(), name='job_messages'),
    path('messages/<int:message_id>/approve/', JobMessageApproveView.as_view(), name='job_message_approve'),
]

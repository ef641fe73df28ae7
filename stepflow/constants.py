"""Shared constants: state namespaces, topics and defaults."""

# State namespaces. Downstream consumers key off these names.
NS_PIPELINES = "pipelines"
NS_STORAGE = "storage"
NS_CAMPAIGNS = "campaigns"
NS_CAMPAIGN_CONTENT = "campaign-content"
NS_EMAIL_TRACKING = "email-tracking"
NS_CLEANUP_LOGS = "cleanup-logs"
NS_REPORTS = "reports"
NS_HEALTH_CHECKS = "health-checks"

# Data pipeline topics
TOPIC_DATA_FETCHED = "data-fetched"
TOPIC_DATA_TRANSFORMED = "data-transformed"
TOPIC_DATA_VALIDATED = "data-validated"
TOPIC_DATA_VALIDATION_FAILED = "data-validation-failed"
TOPIC_PIPELINE_COMPLETED = "pipeline-completed"

# Campaign topics
TOPIC_CAMPAIGN_SCHEDULED = "campaign-scheduled"
TOPIC_CONTENT_GENERATED = "content-generated"
TOPIC_EMAIL_SENT = "email-sent"
TOPIC_EMAILS_SENT = "emails-sent"

# Maintenance topics
TOPIC_CLEANUP_COMPLETED = "cleanup-completed"
TOPIC_DAILY_REPORT_GENERATED = "daily-report-generated"
TOPIC_HEALTH_CHECK_COMPLETED = "health-check-completed"
TOPIC_HEALTH_CHECK_ALERT = "health-check-alert"

# Flows
FLOW_DATA_PIPELINE = "data-processing-pipeline"
FLOW_EMAIL_CAMPAIGN = "email-campaign"
FLOW_SCHEDULED_TASKS = "scheduled-tasks"

DEFAULT_BATCH_SIZE = 10
DEFAULT_BATCH_DELAY_SECONDS = 1.0
DEFAULT_RETENTION_DAYS = 30

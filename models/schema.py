# Centralized collection names to prevent drift.

COL_SYSTEM = "system"
DOC_HEALTHZ = "healthz"

COL_USERS = "users"
COL_SNIPPET_ACCESS = "snippet_access"  # users/{user_id}/snippet_access/{snippet_id}
COL_PURCHASES = "purchases"  # purchases/{stripe_session_id}
COL_SUBSCRIPTIONS = "subscriptions"  # subscriptions/{stripe_subscription_id}
COL_SNIPPETS = "snippets"

"""Message templates for reviewer and owner notifications."""

# ── Reviewer emails ────────────────────────────────────────────────
VERIFY_SUBJECT = "Please verify your review of {business_name}"
VERIFY_BODY = (
    "Hi {name},\n\n"
    "Thank you for reviewing {business_name}. To publish your review, please "
    "confirm your email address by opening the link below:\n\n"
    "{verify_url}\n\n"
    "This link expires in 24 hours and can be used once. If you did not write "
    "this review you can ignore this email."
)
VERIFY_URL = "{client_url}/verify-review?token={token}&reviewId={submission_id}"

PUBLISHED_SUBJECT = "Your review of {business_name} is live"
PUBLISHED_BODY = (
    "Hi {name},\n\n"
    "Your review of {business_name} has been verified and published. "
    "You can see it here:\n\n"
    "{business_url}\n\n"
    "Thanks for helping others choose well."
)
BUSINESS_URL = "{client_url}/business/{slug}"

# ── Owner emails ───────────────────────────────────────────────────
LOW_RATING_SUBJECT = "Low rating alert for {business_name}"
LOW_RATING_BODY = (
    "Your average rating for {business_name} dropped to {average_rating:.1f} "
    "stars across {review_count} reviews.\n\n"
    "Latest review ({rating}/5) by {reviewer_name}:\n"
    "\"{snippet}\"\n\n"
    "Immediate attention recommended."
)

# ── Dashboard pushes ───────────────────────────────────────────────
NEW_REVIEW_TITLE = "New Review Received"
NEW_REVIEW_MESSAGE = "{reviewer_name} left a {rating}-star review"

LOW_RATING_TITLE = "Low Rating Alert"
LOW_RATING_MESSAGE = "Your business rating dropped to {average:.1f} stars. Immediate attention recommended."

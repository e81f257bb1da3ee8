EVENT_GUEST_URL = "/api/v1/events/{event_id}/guests/{guest_id}"

RSVP_URL = f"{EVENT_GUEST_URL}/rsvp"

QR_CODES_URL = f"{EVENT_GUEST_URL}/qr-codes"
QR_CODES_DISPATCHED_URL = f"{QR_CODES_URL}/dispatched"
QR_CODES_EXPIRE_URL = f"{QR_CODES_URL}/expire"
QR_CODES_REISSUE_URL = f"{QR_CODES_URL}/reissue"
QR_CODE_IMAGE_URL = "/api/v1/qr-codes/{code}/image"

QR_DISPATCH_URL = "/api/v1/events/{event_id}/qr-dispatch"
CHECK_IN_URL = "/api/v1/events/{event_id}/check-in"

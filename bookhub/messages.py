"""User-facing message strings returned by the API."""

# Success
BOOKING_CREATED = "Booking created successfully!"
BOOKING_UPDATED = "Booking updated successfully!"
BOOKING_CONFIRMED = "Booking confirmed successfully!"
BOOKINGS_DELETED = "Selected bookings deleted successfully"
USER_CREATED = "User created successfully"
USER_UPDATED = "User updated successfully"
PROFILE_UPDATED = "Profile updated successfully!"
PASSWORD_RESET_SENT = "Password reset email sent successfully"
PASSWORD_UPDATED = "Password updated successfully"
EMAIL_VERIFIED = "Email verified successfully! Welcome to the platform."
REGISTRATION_SUCCESS = "Registration successful!"
SETTINGS_SAVED = "Settings saved successfully"
STAFF_AVAILABILITY_UPDATED = "Staff availability updated successfully"
NEW_OTP_SENT = "New OTP sent to your phone."
SET_NEW_PASSWORD = "You can now set your new password."

# Authentication
CHECK_EMAIL_CONFIRMATION = "Please check your email for the confirmation link."
EMAIL_NOT_CONFIRMED = "Please check your email to validate your account before signing in."
EMAIL_ALREADY_VERIFIED = "Your email is already verified. Please sign in to continue."
EMAIL_REQUIRED_RESET = "Please enter your email address to reset your password."
MOBILE_SIGNUP_DISABLED = "Mobile sign up is currently disabled."
MOBILE_SIGNIN_DISABLED = "Mobile sign in is currently disabled."
INVALID_RECOVERY_LINK = "Invalid or expired recovery link."
EXPIRED_EMAIL_LINK = "Email link is invalid or has expired"
RECOVERY_NOT_READY = "Recovery session not ready. Please ensure the link is valid or try again."
PASSWORDS_DO_NOT_MATCH = "Passwords do not match"
PASSWORD_TOO_SHORT = "Password must be at least 6 characters"
UNKNOWN_USER_ROLE = "Unknown user role. Please contact support."
DUPLICATE_EMAIL = (
    "This email address is already registered. Please use a different email or try signing in."
)
INVALID_CREDENTIALS = "invalid email or password"
INVALID_OTP = "The verification code is invalid or has expired."
OTP_COOLDOWN = "Please wait before requesting a new code."
VERIFICATION_TIMEOUT = "Verification is taking longer than expected. Please refresh the page."

# Bookings
INVALID_CUSTOMER = "Please select a valid customer"
INVALID_SERVICE = "Please select a service"
INVALID_PROVIDER = "Please select a provider"
INVALID_START_TIME = "Invalid start time"
INVALID_DATE = "Please provide a valid date"
INVALID_EMAIL = "Please enter a valid email address"
FIELD_REQUIRED = "is required"
START_IN_PAST = "Booking start time cannot be in the past"
BEYOND_ADVANCE_WINDOW = "Bookings can only be made up to {days} days in advance"
END_BEFORE_START = "Booking end time must be after its start time"
BOOKING_OVERLAP = (
    "Selecting this time would cause the booking duration to overlap with existing bookings."
)
EDIT_WINDOW_CLOSED = "This booking can no longer be changed online. Please contact us."

# Misc
NOT_AVAILABLE = "N/A"
UNKNOWN_LOCATION = "Unknown Location"
UNASSIGNED = "Unassigned"

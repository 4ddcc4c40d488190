# /copay_ussd/config/strings.py

# This file contains all user-facing USSD text, making it easy to manage,
# update, and eventually localize without changing application logic.
# USSD screens are plain text: no markdown, no emoji, short lines.

MAIN_MENU_OPTIONS = "1. Make Payment\n2. My Payments\n3. Help"

# --- Welcome ---
WELCOME = "Welcome to Co-Pay, {first_name}!\n\n" + MAIN_MENU_OPTIONS + "\n\nEnter your choice:"
DEFAULT_FIRST_NAME = "User"
ACCOUNT_UNAVAILABLE = (
    "This number cannot use Co-Pay right now. "
    "Please contact your cooperative administrator."
)

# --- Main menu ---
INVALID_MAIN_MENU_CHOICE = "Invalid choice. Please select:\n" + MAIN_MENU_OPTIONS

# --- PIN ---
ENTER_PIN = "Enter your 4-digit PIN:"
INVALID_PIN_FORMAT = "Invalid PIN format. Please enter your 4-digit PIN:"
INCORRECT_PIN = "Incorrect PIN. Please enter your 4-digit PIN:"
USER_NOT_FOUND = "User not found. Session terminated."

# --- Selection menus ---
SELECT_COOPERATIVE_HEADER = "Select your cooperative:"
COOPERATIVE_LINE = "{index}. {name} ({code})"
NO_ACTIVE_COOPERATIVES = "No active cooperatives found."

SELECT_PAYMENT_TYPE_HEADER = "Select payment type:"
PAYMENT_TYPE_LINE = "{index}. {name} - {amount} {currency}"
NO_PAYMENT_TYPES = "No payment types available for your cooperative."

ENTER_CHOICE = "Enter your choice:"
INVALID_LIST_CHOICE = "Invalid choice. Please select 1-{count}:"

# --- Confirmation ---
PAYMENT_DETAILS = (
    "Payment Details:\n"
    "Type: {name}\n"
    "Amount: {amount} {currency}\n"
    "Description: {description}\n\n"
    "Confirm payment? (Y/N):"
)
NO_DESCRIPTION = "N/A"
INVALID_CONFIRMATION = "Invalid input. Confirm payment? (Y/N):"
PAYMENT_CANCELLED = "Payment cancelled."

# --- Payment outcome ---
PAYMENT_COMPLETED = (
    "Payment Successful!\n"
    "Amount: {amount} {currency}\n"
    "Reference: {reference}\n"
    "Thank you for using Co-Pay!"
)
PAYMENT_PENDING = (
    "Payment initiated successfully!\n"
    "Amount: {amount} {currency}\n"
    "Reference: {reference}\n"
    "You will receive a mobile money prompt shortly.\n"
    "Thank you for using Co-Pay!"
)
PAYMENT_FAILED = (
    "Payment failed. Please try again later or contact support.\n"
    "Reference: {reference}"
)
PAYMENT_STATUS_UNKNOWN = (
    "We could not confirm your payment in time.\n"
    "Please check My Payments before trying again."
)

# --- Payment history ---
NO_PAYMENT_HISTORY = "No payment history found."
RECENT_PAYMENTS_HEADER = "Your Recent Payments:"
PAYMENT_HISTORY_ENTRY = "{index}. {type_name}\n   {amount} {currency} - {status}\n   Date: {date}"

# --- Help ---
HELP_GENERIC = (
    "Help Information:\n\n"
    "For technical support, please contact:\n"
    "Email: {support_email}\n"
    "Phone: {support_phone}\n\n"
    "Co-Pay - Making payments simple!"
)
HELP_COOPERATIVE = (
    "Help Information:\n\n"
    "Your Cooperative: {name}\n"
    "Contact Phone: {phone}\n"
    "Contact Email: {email}\n\n"
    "For technical support:\n"
    "Email: {support_email}\n"
    "Phone: {support_phone}"
)
NOT_AVAILABLE = "Not available"

# --- Gateway ---
SERVICE_UNAVAILABLE = "Service temporarily unavailable. Please try again later."

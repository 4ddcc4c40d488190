import sys
import bcrypt
import getpass

# Generates the bcrypt hash stored in a user's "pin" field, for seeding test
# users in the Co-Pay database.

# --- 1. Get the PIN securely ---
# Using getpass is more secure as it doesn't show the PIN on the screen
try:
    pin = getpass.getpass("Enter the 4-digit PIN: ")
except Exception as error:
    print('ERROR', error)
    sys.exit(1)

if not (len(pin) == 4 and pin.isdigit()):
    print("ERROR: a PIN is exactly 4 digits")
    sys.exit(1)


# --- 2. Generate the hash ---
# The PIN needs to be encoded to UTF-8 bytes
hashed_bytes = bcrypt.hashpw(pin.encode('utf-8'), bcrypt.gensalt())


# --- 3. Decode the hash to a string for storage ---
hashed_string = hashed_bytes.decode('utf-8')

print("\nNew PIN hash generated.\n")
print("Store this value in the user's 'pin' field:")
print("----------------------------------------------------------------------")
print(hashed_string)
print("----------------------------------------------------------------------")

"""Global constants for the studyhub application."""

# Collection names
USERS_COLLECTION = "users"
GROUPS_COLLECTION = "groups"
CHATS_COLLECTION = "chats"
NOTIFICATIONS_COLLECTION = "notifications"

# Challenge-related constants
MIN_CHALLENGE_DAYS = 2
MAX_CHALLENGE_DAYS = 6
MS_PER_DAY = 24 * 60 * 60 * 1000

# Group-related constants
GROUP_NAME_MIN_LENGTH = 2
GROUP_NAME_MAX_LENGTH = 100
GROUP_DESCRIPTION_MAX_LENGTH = 500
CHAPTER_MIN_LENGTH = 2
CHAPTER_MAX_LENGTH = 200
DEFAULT_MAX_MEMBERS = 10
MIN_MAX_MEMBERS = 2
MAX_MAX_MEMBERS = 20
INVITATION_TTL_DAYS = 7

# Exam-related constants
DEFAULT_MAX_MARKS = 100
DEFAULT_EXAM_MINUTES = 180
MAX_ANSWER_SHEETS = 10

# Chat-related constants
MAX_MESSAGE_LENGTH = 1000
MAX_EMOJI_LENGTH = 16
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
UNREAD_PREVIEW_LIMIT = 10

# Notification-related constants
NOTIFICATION_TTL_DAYS = 30
NOTIFICATION_TITLE_MAX_LENGTH = 100
NOTIFICATION_MESSAGE_MAX_LENGTH = 500

# Realtime room prefixes
GROUP_ROOM_PREFIX = "group_"
USER_ROOM_PREFIX = "user_"
USER_STATUSES = ("online", "away", "busy", "offline")

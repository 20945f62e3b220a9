"""常量定义：HTTP 状态码、默认账号与种子数据名称。"""

HTTP_STATUS_OK = 200
HTTP_STATUS_CREATED = 201
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_CONFLICT = 409
HTTP_STATUS_PAYLOAD_TOO_LARGE = 413
HTTP_STATUS_INTERNAL_SERVER_ERROR = 500
HTTP_STATUS_BAD_GATEWAY = 502
HTTP_STATUS_GATEWAY_TIMEOUT = 504

ACCESS_TOKEN_TYPE = "bearer"

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin123"
DEFAULT_ADMIN_NICKNAME = "系统管理员"
DEFAULT_DEPARTMENT_NAME = "General"

DEFAULT_REPLACE_NOTE = "File replaced"
RESTORE_BACKUP_NOTE = "Backup before restoring version {version}"

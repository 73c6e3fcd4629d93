# Operator-facing messages (Vietnamese, as shown in the clinic UI)

GENERIC_ERROR = "Có lỗi xảy ra. Vui lòng thử lại."
BACKEND_UNAVAILABLE = "Không thể kết nối tới máy chủ."
RATE_LIMITED = "Quá nhiều yêu cầu. Vui lòng đợi một chút và thử lại."
REQUEST_TIMEOUT = "Yêu cầu quá thời gian chờ. Vui lòng thử lại."
REFRESH_TOO_SOON = "Vui lòng đợi một chút trước khi thử lại."
SESSION_EXPIRED = "Phiên đăng nhập đã hết hạn. Vui lòng đăng nhập lại."
LOGIN_FAILED = "Đăng nhập thất bại."

FETCH_FAILED = "Không thể tải danh sách ca trực"
PREVIEW_FAILED = "Không thể lấy thông tin preview"
CANCEL_FAILED = "Không thể hủy ca trực"
RESTORE_FAILED = "Không thể khôi phục ca trực"

REASON_REQUIRED = "Vui lòng nhập lý do hủy ca"
ONLY_ACTIVE_CANCELLABLE = "Chỉ có thể hủy ca trực đang hoạt động"
ONLY_CANCELLED_RESTORABLE = "Chỉ có thể khôi phục ca trực đã hủy"
INVALID_TRANSITION = "Thao tác không hợp lệ ở trạng thái hiện tại"
WORKFLOW_BUSY = "Ca trực đang được xử lý. Vui lòng đợi."
ASSIGNMENT_NOT_FOUND = "Không tìm thấy ca trực"

CANCEL_SUCCEEDED = "Đã hủy ca trực thành công!"
CANCEL_PROCESSED = " {rescheduled}/{total} lịch hẹn đã được xử lý."
CANCEL_PARTIAL = "Đã xử lý {total} lịch hẹn. Chuyển thành công: {rescheduled}, Thất bại: {failed}"
RESTORE_SUCCEEDED = "Đã khôi phục ca trực thành công!"

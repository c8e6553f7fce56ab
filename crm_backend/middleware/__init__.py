from .upload_limiter import UploadSizeLimiterMiddleware

"""
领域异常定义
所有流水线相关的异常都继承自 ResumePipelineError，按来源分为四类：

1. ValidationError：上传文件在任何网络调用之前就被拒绝（格式/大小/可读性）
2. ExternalServiceError：第三方 AI 服务调用失败（限流、鉴权、超大负载、不可用）
3. InvalidTransition：状态机契约被破坏，属于程序错误，不应暴露给终端用户
4. NotFound：记录或文件不存在
"""

from typing import Optional


class ResumePipelineError(Exception):
    """简历处理流水线异常基类"""


# ==================== 输入校验 ====================

class ValidationError(ResumePipelineError):
    """上传文件校验失败，在接收阶段直接拒绝，不会写入 failed 状态"""


class UnsupportedFormat(ValidationError):
    """音频格式不在支持列表中"""


class FileTooLarge(ValidationError):
    """文件超过大小上限"""


class ResourceUnreadable(ValidationError):
    """文件不存在或不可读"""


# ==================== 外部服务 ====================

class ExternalServiceError(ResumePipelineError):
    """
    第三方 AI 服务调用失败

    Attributes:
        service: 服务名称（如 huggingface、openai_whisper）
        status_code: HTTP 状态码（网络层错误时为 None）
        retryable: 上层是否可以重试整个阶段
    """

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = True
    ):
        super().__init__(message)
        self.message = message
        self.service = service
        self.status_code = status_code
        self.retryable = retryable


class RateLimited(ExternalServiceError):
    """触发第三方限流 (HTTP 429)"""


class AuthFailed(ExternalServiceError):
    """鉴权失败 (HTTP 401/403)"""


class InvalidApiKey(AuthFailed):
    """API Key 无效或缺失"""


class PayloadTooLarge(ExternalServiceError):
    """请求体超过服务端限制 (HTTP 413)"""


class ServiceUnavailable(ExternalServiceError):
    """服务暂不可用（5xx 或网络错误）"""


class ModelLoading(ServiceUnavailable):
    """Hugging Face 模型冷启动中 (HTTP 503 + loading)"""


class ServiceTimeout(ServiceUnavailable):
    """调用超时"""


class TranscriptionServiceError(ExternalServiceError):
    """语音转写失败（未归入更具体子类的错误）"""


class ParsingServiceError(ExternalServiceError):
    """问答抽取在所有字段上都失败"""


# ==================== 状态机 ====================

class InvalidTransition(ResumePipelineError):
    """非法的状态流转"""

    def __init__(self, from_status: str, to_status: str):
        super().__init__(f"Invalid status transition: {from_status} -> {to_status}")
        self.from_status = from_status
        self.to_status = to_status


# ==================== 资源 ====================

class NotFound(ResumePipelineError):
    """记录或文件不存在"""

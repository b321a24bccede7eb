"""
resume_intake - 简历接收与 AI 处理流水线

上传的文档或语音简历经过 转写 -> 解析 -> 增强 -> 置信度评分 的异步多阶段流水线，
结果写入简历记录表，并可与职位描述进行对比。
"""

__version__ = "0.1.0"

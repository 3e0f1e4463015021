"""领域层模型与协议。

包含：
- models: ChatMessage / ChatRequest / ChatResult、RelayState、StatusSignal 等模型。
- exceptions: 业务异常类型定义。
"""

"""
Agent 层

- runtime: 工具调用执行器
- security: 过滤、路径范围、受保护文件、审计与密钥扫描
"""

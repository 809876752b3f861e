"""
系统层

- services: 日志、配置、API 令牌
- tools: 工具接口、内建工具与注册表
"""

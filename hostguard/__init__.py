"""
HostGuard - Agent 工具调用安全层

位于自主 Agent 与宿主机之间，调解每一次有副作用的操作：
shell 执行、文件读写与编辑、HTTP 抓取、记忆检索。

保证：
- 编译期固定的危险操作基线无法通过配置关闭
- 路径参数被限制在允许目录内
- 少数安全关键文件永远不能被 Agent 修改
- 安全策略被篡改后能够被检测到

快速开始：
    from hostguard.agent.runtime import ToolCall, create_tool_executor
    from hostguard.system.services.config_center import load_config

    executor = create_tool_executor(load_config())
    result = await executor.execute(
        ToolCall(tool_name="read_file", arguments='{"path": "~/notes.md"}')
    )
    print(result.to_string())

CLI使用：
    hostguard sign
    hostguard audit --verify-chain
"""

__version__ = "0.1.0"

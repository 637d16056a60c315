"""ComplianceFoundry - 合规文档到测试用例的生成流水线"""

__version__ = "0.1.0"

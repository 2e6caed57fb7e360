# polyglot_press/providers/__init__.py
"""生成式 AI 补全提供商插件包。"""

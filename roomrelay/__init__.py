"""
roomrelay
~~~~~~~~~

房间制实时聊天中继服务。
"""
__version__ = "0.1.0"

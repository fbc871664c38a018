# chemledger/db/__init__.py
# 不在包级创建引擎；连接句柄见 chemledger.db.session.Database

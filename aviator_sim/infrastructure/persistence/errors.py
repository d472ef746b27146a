# aviator_sim/infrastructure/persistence/errors.py


class StoreUnavailableError(Exception):
    """外部存储（本地文件、S3）读写失败。游戏继续在内存中运行。"""
    def __init__(self, store: str, key: str, cause: Exception = None):
        self.store = store
        self.key = key
        self.cause = cause
        self.message = f"{store} unavailable for key '{key}'" + (f": {cause}" if cause else "")
        super().__init__(self.message)

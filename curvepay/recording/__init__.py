from curvepay.recording.recorder import PurchaseRecorder

__all__ = ["PurchaseRecorder"]

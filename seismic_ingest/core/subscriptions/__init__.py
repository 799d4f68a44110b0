from .registry import Batch, SubscriberCallback, Subscription, SubscriptionRegistry

__all__ = ["Batch", "SubscriberCallback", "Subscription", "SubscriptionRegistry"]

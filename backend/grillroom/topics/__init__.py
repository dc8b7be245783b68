from grillroom.topics.catalog import BUILTIN_TOPICS, TopicCatalog, topic_catalog
from grillroom.topics.models import Topic, normalize_concept_name

__all__ = ["BUILTIN_TOPICS", "Topic", "TopicCatalog", "normalize_concept_name", "topic_catalog"]

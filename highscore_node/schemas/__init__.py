from highscore_node.schemas.event_contracts import DispatchEventEnvelope, RepositoryDispatchPayload

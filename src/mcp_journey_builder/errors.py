class JourneyError(ValueError):
    "Base class for rejected journey operations. The snapshot is left unchanged."


class DuplicateKeyError(JourneyError):
    "A property key or an entity identifier is already in use."


class DuplicateEdgeError(JourneyError):
    "An edge already connects the same ordered pair of nodes."


class DuplicateMappingError(JourneyError):
    "A mapping already binds the same node and function."


class SelfLoopError(JourneyError):
    "An edge would start and end on the same node."


class DanglingReferenceError(JourneyError):
    "A referenced node, function, property, mapping or edge does not exist."


class MissingRequiredFieldError(JourneyError):
    "A required field was empty on create or save."


class ImmutableIdentifierError(JourneyError):
    "A patch tried to change the identifier of an existing entity."

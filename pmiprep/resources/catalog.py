"""
Study resources: listing, gated downloads and download tracking.

Premium resources are only handed out to enrolled users. Every download is
recorded in the resource-downloads collection and bumps the resource's
download counter.
"""

from __future__ import annotations

from loguru import logger

from pmiprep.core.auth import AdminResolver
from pmiprep.core.errors import AuthorizationError, TransientRemoteError, ValidationError
from pmiprep.core.models import Resource, ResourceCategory, ResourceDownload, User
from pmiprep.store.base import Collection, DocumentStore, Filter, equal, user_permissions


class ResourceCatalog:
    def __init__(self, store: DocumentStore, admin_resolver: AdminResolver | None = None) -> None:
        self.store = store
        self.admin_resolver = admin_resolver or AdminResolver(store)

    def list_resources(
        self,
        exam_type: str | None = None,
        category: ResourceCategory | str | None = None,
    ) -> list[Resource]:
        filters: list[Filter] = []
        if exam_type:
            filters.append(equal("examType", exam_type))
        if category:
            filters.append(equal("category", ResourceCategory(category)))
        try:
            documents = self.store.list_documents(Collection.RESOURCES, filters, order_by="order")
        except TransientRemoteError as exc:
            logger.warning("Could not load resources: {}", exc)
            return []
        return [Resource.from_dict(d) for d in documents]

    def download(self, user: User | None, resource_id: str, enrolled: bool) -> str:
        """Return a download URL for ``resource_id`` and record the download."""
        if user is None:
            raise AuthorizationError("Sign in to download resources")
        resource = Resource.from_dict(self.store.get_document(Collection.RESOURCES, resource_id))
        if resource.is_premium and not enrolled:
            raise AuthorizationError(f"'{resource.title}' is available to enrolled students only")
        if not resource.file_id:
            raise ValidationError(f"Resource {resource_id} has no file attached", field="fileId")

        url = self.store.download_url(resource.file_id)
        self.store.create_document(
            Collection.RESOURCE_DOWNLOADS,
            ResourceDownload(user_id=user.id, resource_id=resource_id).to_dict(),
            permissions=user_permissions(user.id),
        )
        self.store.update_document(
            Collection.RESOURCES, resource_id, {"downloadCount": resource.download_count + 1}
        )
        logger.info("User {} downloaded resource {}", user.id, resource_id)
        return url

    # ========================================
    # Admin
    # ========================================

    def create_resource(self, admin: User, resource: Resource, data: bytes, filename: str) -> Resource:
        self.admin_resolver.require_admin(admin)
        if not resource.title.strip():
            raise ValidationError("Resource title is required", field="title")
        resource.file_id = self.store.upload_file(data, filename)
        resource.file_size = len(data)
        if not resource.file_type and "." in filename:
            resource.file_type = filename.rsplit(".", 1)[1].lower()
        document = self.store.create_document(Collection.RESOURCES, resource.to_dict())
        return Resource.from_dict(document)

    def delete_resource(self, admin: User, resource_id: str) -> None:
        self.admin_resolver.require_admin(admin)
        self.store.delete_document(Collection.RESOURCES, resource_id)
        logger.info("Resource {} deleted by {}", resource_id, admin.id)

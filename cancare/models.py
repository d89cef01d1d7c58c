from django.db import models


class StoredDocument(models.Model):
    """
    Django backend 的存储单元：一行 = 一个文档。

    data 里的 datetime 以 {"$date": iso} 形式存储，读出时还原（见 store/backends.py）。
    """

    collection = models.CharField(max_length=100)
    doc_id = models.CharField(max_length=64)
    data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'documents'
        constraints = [
            models.UniqueConstraint(fields=['collection', 'doc_id'], name='uniq_collection_doc_id'),
        ]
        indexes = [
            models.Index(fields=['collection'], name='documents_collection_idx'),
        ]

    def __str__(self):
        return f'{self.collection}/{self.doc_id}'

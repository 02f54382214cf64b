from .comment_importer import CommentImporter, CommentRow, find_comment_id, import_comments

__all__ = ["CommentImporter", "CommentRow", "find_comment_id", "import_comments"]
